"""
Record and point schemas exchanged with the vector store.

ImageRecord is generic over its caller supplied metadata. Encoding to and
from the store payload goes through to_payload and from_payload only.
"""

from typing import Any, Dict, Generic, List, Optional, Type, TypeVar
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic_core import PydanticSerializationError

from ..errors import PayloadDecodingError, PayloadEncodingError

ExtraT = TypeVar("ExtraT")


def _new_id() -> str:
    return str(uuid4())


class ImageRecord(BaseModel, Generic[ExtraT]):
    """Image path and optional metadata stored alongside its embedding."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id, description="Point identifier")
    path: str = Field(..., description="Source location of the image")
    extra: Optional[ExtraT] = Field(None, description="Caller supplied metadata")

    @classmethod
    def with_path(cls, path: Any) -> "ImageRecord":
        return cls(path=str(path))

    @classmethod
    def with_extra(cls, path: Any, extra: ExtraT) -> "ImageRecord":
        return cls(path=str(path), extra=extra)

    def to_payload(self) -> Dict[str, Any]:
        """
        Encode the record as a JSON compatible payload.

        The id is the point identifier and is not repeated in the payload;
        an absent extra produces no payload field.

        Raises:
            PayloadEncodingError: If extra is not JSON serializable
        """
        try:
            payload = self.model_dump(mode="json", exclude={"id"})
        except (PydanticSerializationError, TypeError, ValueError) as e:
            raise PayloadEncodingError(
                f"Failed to encode metadata of {self.path}: {e}"
            ) from e

        if self.extra is None:
            payload.pop("extra", None)
        return payload

    @classmethod
    def from_payload(
        cls,
        point_id: Any,
        payload: Optional[Dict[str, Any]],
        extra_type: Optional[Type[Any]] = None,
    ) -> "ImageRecord":
        """
        Decode a stored payload back into a record.

        Args:
            point_id: Identifier of the stored point
            payload: Payload returned by the store
            extra_type: Optional type the extra field is validated against

        Raises:
            PayloadDecodingError: If the payload does not describe a record
        """
        payload = payload or {}
        if "path" not in payload:
            raise PayloadDecodingError(f"Payload of point {point_id} has no path")

        extra = payload.get("extra")
        try:
            if extra is not None and extra_type is not None:
                extra = TypeAdapter(extra_type).validate_python(extra)
            return cls(id=str(point_id), path=payload["path"], extra=extra)
        except ValueError as e:
            raise PayloadDecodingError(
                f"Failed to decode payload of point {point_id}: {e}"
            ) from e


class StoredPoint(BaseModel):
    """Point returned by an id lookup."""

    id: str = Field(..., description="Point identifier")
    payload: Optional[Dict[str, Any]] = Field(None, description="Point payload")
    vector: Optional[List[float]] = Field(None, description="Stored vector")

    def record(self, extra_type: Optional[Type[Any]] = None) -> ImageRecord:
        return ImageRecord.from_payload(self.id, self.payload, extra_type)


class ScoredPoint(StoredPoint):
    """Point returned by a similarity query."""

    score: float = Field(..., description="Cosine similarity to the probe")
