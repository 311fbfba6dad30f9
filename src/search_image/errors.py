"""
Error hierarchy for the search-image core.

Every failure raised by the package derives from SearchImageError so that
callers can catch the whole family at one seam, while the concrete classes
keep device, input, inference and vector store failures distinguishable.
"""

from typing import Optional


class SearchImageError(Exception):
    """Base class for search-image errors."""


class DeviceUnavailable(SearchImageError):
    """Requested compute device is not available on this host."""


class CudaUnavailable(DeviceUnavailable):
    """CUDA device requested but not available."""


class AcceleratorUnavailable(DeviceUnavailable):
    """Dedicated accelerator (MPS) requested but not available."""


class DeviceError(SearchImageError):
    """Network weights could not be bound to the selected device."""


class WeightsFetchError(SearchImageError):
    """Model weights could not be fetched from the cache or the hub."""


class ImageDecodeError(SearchImageError):
    """Image content is corrupt or in an unsupported format."""


class ImageIOError(SearchImageError, OSError):
    """Image file could not be read."""


class FolderError(SearchImageError):
    """Folder based extraction errors."""


class FolderNotFound(FolderError):
    """Path does not exist or is not a directory."""


class FolderEmpty(FolderError):
    """Directory contains no entries."""


class InferenceError(SearchImageError):
    """Forward pass failed or produced an unexpected shape."""


class InvalidInput(SearchImageError, ValueError):
    """Caller supplied arguments rejected before any I/O."""


class LengthMismatch(InvalidInput):
    """Parallel sequences supplied by the caller differ in length."""

    def __init__(self, what: str, left: int, right: int):
        self.left = left
        self.right = right
        super().__init__(f"{what} must have the same length: {left} != {right}")


class InvalidArgument(InvalidInput):
    """Argument outside its accepted domain."""


class PayloadEncodingError(SearchImageError):
    """Record metadata could not be encoded to a JSON payload."""


class PayloadDecodingError(SearchImageError):
    """Stored payload could not be decoded back into a record."""


class StoreError(SearchImageError):
    """Vector store reported a failure or an empty result."""

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class StoreConnectionError(StoreError):
    """Vector store client could not be built."""


class CollectionError(StoreError):
    """Collection existence check or creation failed."""


class UpsertError(StoreError):
    """Point upsert failed."""


class DeleteError(StoreError):
    """Point deletion failed."""


class QueryError(StoreError):
    """Point retrieval or similarity query failed."""


def error_message(error: Optional[BaseException]) -> str:
    """Render an exception for log lines and wrapped error messages."""
    if error is None:
        return "no result"
    text = str(error)
    return text if text else type(error).__name__
