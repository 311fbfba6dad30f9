"""
Search-image session: one extractor bound to one vector store collection.

App composes device resolution, the feature extractor and the vector store
client. Extraction is blocking work and is run on a worker thread so the
event loop keeps serving store I/O.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from qdrant_client import AsyncQdrantClient

from .config import DbConfig, MobilenetConfig
from .errors import LengthMismatch
from .models.device import resolve_device
from .models.extractor import DEFAULT_CACHE_DIR, FeatureExtractor, list_folder
from .models.schemas import ImageRecord, ScoredPoint
from .store import VectorStoreClient

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class App:
    """Embedding extraction and vector store synchronization session."""

    def __init__(self, extractor: FeatureExtractor, store: VectorStoreClient):
        self._extractor = extractor
        self._store = store

    @classmethod
    async def create(
        cls,
        db_config: DbConfig,
        mobilenet_config: MobilenetConfig,
        cache_dir: Optional[PathLike] = None,
        client: Optional[AsyncQdrantClient] = None,
        workers: Optional[int] = None,
    ) -> "App":
        """
        Build a session.

        The device and model are set up before the store is contacted, so
        device and weights failures surface before any network store call.

        Args:
            db_config: Store endpoint and collection
            mobilenet_config: Network kind and device
            cache_dir: Local weights cache directory
            client: Existing Qdrant client to use instead of connecting
            workers: Threads used to preprocess a batch

        Raises:
            DeviceUnavailable: If the requested device is missing
            WeightsFetchError: If the weights cannot be fetched
            DeviceError: If the weights cannot be bound to the device
            StoreError: If the store cannot be reached or provisioned
        """
        backend = resolve_device(mobilenet_config.device)
        extractor = await asyncio.to_thread(
            FeatureExtractor,
            mobilenet_config.kind,
            backend,
            cache_dir if cache_dir is not None else DEFAULT_CACHE_DIR,
            workers,
        )

        store = VectorStoreClient(db_config, client=client)
        try:
            await store.ensure_collection()
        except Exception:
            await store.close()
            raise

        logger.info(
            f"Session ready: {mobilenet_config.kind.value} on {backend.name}, "
            f"collection {db_config.collection}"
        )
        return cls(extractor, store)

    @property
    def extractor(self) -> FeatureExtractor:
        return self._extractor

    @property
    def store(self) -> VectorStoreClient:
        return self._store

    @property
    def collection(self) -> str:
        return self._store.collection

    async def _write(self, paths: Sequence[PathLike], records: List[ImageRecord]) -> List[str]:
        embeddings = await asyncio.to_thread(self._extractor.extract_batch, list(paths))
        return await self._store.add(embeddings, records)

    async def add_images(self, paths: Sequence[PathLike]) -> List[str]:
        """
        Extract and store a batch of images without metadata.

        Extraction runs for the whole batch before anything is written, so a
        failing image leaves the collection untouched.

        Returns:
            Point ids in input order
        """
        records = [ImageRecord.with_path(path) for path in paths]
        return await self._write(paths, records)

    async def add_images_with_extra(
        self, paths: Sequence[PathLike], extras: Sequence[Any]
    ) -> List[str]:
        """
        Extract and store a batch of images, each with its own metadata.

        Raises:
            LengthMismatch: If paths and extras differ in length
        """
        if len(paths) != len(extras):
            raise LengthMismatch("paths and extras", len(paths), len(extras))

        records = [
            ImageRecord.with_extra(path, extra) for path, extra in zip(paths, extras)
        ]
        # Encode up front so bad metadata fails before inference runs.
        for record in records:
            record.to_payload()
        return await self._write(paths, records)

    async def add_folder(self, folder_path: PathLike) -> List[str]:
        """Extract and store every entry of a folder."""
        return await self.add_images(list_folder(folder_path))

    async def search_image(
        self,
        image_path: PathLike,
        k: int = 10,
        with_payload: bool = True,
        with_vectors: bool = False,
    ) -> List[ScoredPoint]:
        """Find the stored images most similar to an image file."""
        embedding = await asyncio.to_thread(self._extractor.extract, image_path)
        return await self._store.query(embedding, k, with_payload, with_vectors)

    async def delete_images(self, ids: Sequence[str]) -> None:
        await self._store.delete_by_ids(ids)

    async def close(self) -> None:
        await self._store.close()

    async def __aenter__(self) -> "App":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
