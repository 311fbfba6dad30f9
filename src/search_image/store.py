"""
Vector store client backed by Qdrant.

This module wraps the asynchronous Qdrant client with the add, delete,
lookup and similarity query protocol used by search-image, and provisions
the collection idempotently.
"""

import asyncio
import logging
from typing import Any, List, Mapping, Optional, Sequence

import httpx
import numpy as np
from pydantic import ValidationError
from qdrant_client import AsyncQdrantClient, models

from .config import FEATURE_SIZE, DbConfig
from .errors import (
    CollectionError,
    DeleteError,
    InvalidArgument,
    LengthMismatch,
    QueryError,
    StoreConnectionError,
    StoreError,
    UpsertError,
    error_message,
)
from .models.schemas import ImageRecord, ScoredPoint, StoredPoint

logger = logging.getLogger(__name__)

_TIMEOUT_ERRORS = (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)


def _is_timeout(error: BaseException) -> bool:
    """Check an exception, its causes and wrapped sources for a timeout."""
    seen = set()
    pending = [error]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, _TIMEOUT_ERRORS):
            return True
        pending.extend(
            [current.__cause__, current.__context__, getattr(current, "source", None)]
        )
    return False


def _store_error(cls, action: str, error: Optional[BaseException]) -> StoreError:
    error_msg = f"Failed to {action}: {error_message(error)}"
    logger.error(error_msg)
    timed_out = error is not None and _is_timeout(error)
    return cls(error_msg, timed_out=timed_out)


def _match(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return models.MatchAny(any=list(value))
    return models.MatchValue(value=value)


def _as_vector(vector: Any) -> Optional[List[float]]:
    if vector is None or isinstance(vector, dict):
        return None
    return [float(x) for x in vector]


class VectorStoreClient:
    """
    Client side protocol for one Qdrant collection.

    The underlying AsyncQdrantClient is a shared connection and may be used
    by concurrent tasks without external locking.
    """

    def __init__(self, db_config: DbConfig, client: Optional[AsyncQdrantClient] = None):
        """
        Initialize vector store client.

        Args:
            db_config: Store endpoint, collection name and timeout
            client: Existing client to use instead of connecting to db_config

        Raises:
            StoreConnectionError: If the client cannot be built
        """
        assert db_config is not None, "DbConfig object is required"

        self.db_config = db_config
        self.collection = db_config.collection

        if client is None:
            try:
                client = AsyncQdrantClient(
                    host=db_config.host,
                    port=db_config.port,
                    timeout=db_config.timeout,
                )
            except Exception as e:
                raise _store_error(
                    StoreConnectionError, f"connect to {db_config.url}", e
                ) from e
            logger.info(f"Connected to Qdrant at {db_config.url}")
        self.client = client

    async def ensure_collection(self) -> bool:
        """
        Create the collection if it does not exist yet.

        An existing collection is never recreated or altered.

        Returns:
            True if the collection was created by this call
        """
        try:
            if await self.client.collection_exists(self.collection):
                logger.debug(f"Collection {self.collection} already exists")
                return False

            await self.client.create_collection(
                self.collection,
                vectors_config=models.VectorParams(
                    size=FEATURE_SIZE, distance=models.Distance.COSINE
                ),
            )
        except Exception as e:
            raise _store_error(
                CollectionError, f"provision collection {self.collection}", e
            ) from e

        logger.info(f"Created collection {self.collection} ({FEATURE_SIZE}, cosine)")
        return True

    async def add(
        self, embeddings: Sequence[Sequence[float]], records: Sequence[ImageRecord]
    ) -> List[str]:
        """
        Upsert embeddings paired with their records.

        Args:
            embeddings: One vector per record
            records: Records whose ids become the point ids

        Returns:
            Point ids in input order

        Raises:
            LengthMismatch: If embeddings and records differ in length
            PayloadEncodingError: If a record's metadata is not serializable
            UpsertError: If the store rejects the upsert
        """
        if len(embeddings) != len(records):
            raise LengthMismatch("embeddings and records", len(embeddings), len(records))
        if len(records) == 0:
            return []

        points = [
            models.PointStruct(
                id=record.id,
                vector=np.asarray(embedding, dtype=np.float32).tolist(),
                payload=record.to_payload(),
            )
            for embedding, record in zip(embeddings, records)
        ]

        try:
            result = await self.client.upsert(self.collection, points=points, wait=True)
        except Exception as e:
            raise _store_error(UpsertError, "upsert points", e) from e
        if result is None:
            raise _store_error(UpsertError, "upsert points", None)

        logger.info(f"Upserted {len(points)} points into {self.collection}")
        return [record.id for record in records]

    async def add_one(self, embedding: Sequence[float], record: ImageRecord) -> str:
        ids = await self.add([embedding], [record])
        return ids[0]

    async def _delete(self, selector: Any, description: str) -> None:
        try:
            result = await self.client.delete(
                self.collection, points_selector=selector, wait=True
            )
        except Exception as e:
            raise _store_error(DeleteError, f"delete points by {description}", e) from e
        if result is None:
            raise _store_error(DeleteError, f"delete points by {description}", None)

    async def delete_by_ids(self, ids: Sequence[str]) -> None:
        """
        Delete points by id.

        Unknown ids are ignored by the store, so deleting them succeeds.
        """
        if len(ids) == 0:
            return
        await self._delete(models.PointIdsList(points=list(ids)), "ids")
        logger.info(f"Deleted {len(ids)} ids from {self.collection}")

    async def delete_by_metadata(self, matcher: Mapping[str, Any]) -> None:
        """
        Delete every point whose payload matches all key/value pairs.

        Keys are payload paths such as "path" or "extra.tag". Values are
        strings, integers or booleans; a list of strings or integers matches
        any of its items.

        Raises:
            InvalidArgument: If the matcher is empty or holds another value type
            DeleteError: If the store rejects the deletion
        """
        if not matcher:
            raise InvalidArgument("Metadata matcher must not be empty")

        try:
            conditions = [
                models.FieldCondition(key=key, match=_match(value))
                for key, value in matcher.items()
            ]
        except ValidationError as e:
            error_msg = f"Unsupported metadata matcher {dict(matcher)}: {e}"
            logger.error(error_msg)
            raise InvalidArgument(error_msg) from e

        selector = models.FilterSelector(filter=models.Filter(must=conditions))
        await self._delete(selector, "metadata")
        logger.info(f"Deleted points matching {dict(matcher)} from {self.collection}")

    async def get_by_ids(
        self,
        ids: Sequence[str],
        with_payload: bool = True,
        with_vectors: bool = False,
    ) -> List[StoredPoint]:
        """
        Look up points by id.

        Returns:
            Found points; unknown ids are omitted
        """
        if len(ids) == 0:
            return []

        try:
            records = await self.client.retrieve(
                self.collection,
                ids=list(ids),
                with_payload=with_payload,
                with_vectors=with_vectors,
            )
        except Exception as e:
            raise _store_error(QueryError, "retrieve points", e) from e

        return [
            StoredPoint(
                id=str(record.id),
                payload=record.payload,
                vector=_as_vector(record.vector),
            )
            for record in records
        ]

    async def query(
        self,
        embedding: Sequence[float],
        k: int,
        with_payload: bool = True,
        with_vectors: bool = False,
    ) -> List[ScoredPoint]:
        """
        Find the k nearest points by cosine similarity.

        Args:
            embedding: Probe vector
            k: Maximum number of results
            with_payload: Include payloads in the results
            with_vectors: Include stored vectors in the results

        Returns:
            Up to k points ordered by descending score
        """
        if k < 1:
            raise InvalidArgument(f"k must be positive, got {k}")

        try:
            response = await self.client.query_points(
                self.collection,
                query=np.asarray(embedding, dtype=np.float32).tolist(),
                limit=k,
                with_payload=with_payload,
                with_vectors=with_vectors,
            )
        except Exception as e:
            raise _store_error(QueryError, "query points", e) from e
        if response is None:
            raise _store_error(QueryError, "query points", None)

        results = [
            ScoredPoint(
                id=str(point.id),
                score=float(point.score),
                payload=point.payload,
                vector=_as_vector(point.vector),
            )
            for point in response.points
        ]
        logger.debug(f"Query returned {len(results)} points")
        return results

    async def count(self) -> int:
        """Exact number of points in the collection."""
        try:
            result = await self.client.count(self.collection, exact=True)
        except Exception as e:
            raise _store_error(CollectionError, f"count {self.collection}", e) from e
        return result.count

    async def close(self) -> None:
        await self.client.close()
