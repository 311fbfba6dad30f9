"""
search-image: image embedding extraction synchronized with a vector index.

This package turns images into 960 dimensional MobileNetV4 embeddings and
keeps them in a Qdrant collection for cosine similarity search.
"""

__version__ = "0.1.0"

from .app import App
from .config import DbConfig, Device, MobilenetConfig, NetworkKind, Settings
from .models.extractor import FeatureExtractor
from .models.schemas import ImageRecord, ScoredPoint, StoredPoint
from .store import VectorStoreClient

__all__ = [
    "App",
    "DbConfig",
    "Device",
    "FeatureExtractor",
    "ImageRecord",
    "MobilenetConfig",
    "NetworkKind",
    "ScoredPoint",
    "Settings",
    "StoredPoint",
    "VectorStoreClient",
]
