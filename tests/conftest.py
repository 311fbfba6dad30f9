"""
Test configuration and shared fixtures for the search-image test suite.

Real extractors are built from randomly initialised weights written to a
local safetensors file, so no test downloads anything. Store tests run
against Qdrant's in-memory local mode.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator
from unittest.mock import patch

import numpy as np
import pytest
import timm
from PIL import Image
from qdrant_client import AsyncQdrantClient
from safetensors.torch import save_file

from search_image.config import DbConfig, NetworkKind
from search_image.models.device import CpuBackend
from search_image.models.extractor import FeatureExtractor
from search_image.store import VectorStoreClient

from tests.mocks import MockFeatureExtractor


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture(scope="session")
def weights_dir() -> Generator[Path, None, None]:
    temp_path = Path(tempfile.mkdtemp(prefix="search_image_weights_"))
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


def write_random_weights(kind: NetworkKind, directory: Path) -> Path:
    """Write randomly initialised weights of a network kind to safetensors."""
    network = timm.create_model(kind.architecture(), pretrained=False)
    state = {key: value.contiguous() for key, value in network.state_dict().items()}
    weights_path = directory / f"{kind.value}.safetensors"
    save_file(state, str(weights_path))
    return weights_path


def build_extractor(kind: NetworkKind, directory: Path, **kwargs) -> FeatureExtractor:
    weights_path = write_random_weights(kind, directory)
    with patch(
        "search_image.models.extractor.fetch_weights", return_value=weights_path
    ):
        return FeatureExtractor(kind, CpuBackend(), **kwargs)


@pytest.fixture(scope="session")
def small_extractor(weights_dir: Path) -> FeatureExtractor:
    """Small network extractor with random weights."""
    return build_extractor(NetworkKind.SMALL, weights_dir, workers=4)


@pytest.fixture
def make_image(temp_dir: Path) -> Callable[..., Path]:
    """Factory writing a generated image file and returning its path."""

    def _make(
        name: str = "image.png", size=(120, 80), color=None, seed: int = 0
    ) -> Path:
        if color is not None:
            image = Image.new("RGB", size, color=color)
        else:
            rng = np.random.default_rng(seed)
            pixels = rng.integers(0, 256, (size[1], size[0], 3), dtype=np.uint8)
            image = Image.fromarray(pixels, "RGB")
        path = temp_dir / name
        image.save(path)
        return path

    return _make


@pytest.fixture
def db_config() -> DbConfig:
    return DbConfig(collection="test_images")


@pytest.fixture
def memory_client() -> AsyncQdrantClient:
    """Qdrant client running in local in-memory mode."""
    return AsyncQdrantClient(location=":memory:")


@pytest.fixture
def store(db_config: DbConfig, memory_client: AsyncQdrantClient) -> VectorStoreClient:
    return VectorStoreClient(db_config, client=memory_client)


@pytest.fixture
def mock_extractor() -> MockFeatureExtractor:
    return MockFeatureExtractor()


def normalized(vector) -> np.ndarray:
    vector = np.asarray(vector, dtype=np.float32)
    return vector / np.linalg.norm(vector)


def assert_embeddings_close(actual, expected) -> None:
    """Compare embeddings within float32 tolerance scaled to their magnitude."""
    expected = np.asarray(expected, dtype=np.float32)
    scale = max(float(np.abs(expected).max()), 1.0)
    np.testing.assert_allclose(actual, expected, rtol=1e-4, atol=1e-4 * scale)
