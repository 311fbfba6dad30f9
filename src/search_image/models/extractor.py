"""
MobileNetV4 feature extractor for image embedding generation.

This module provides the extractor that owns the loaded network weights and
its execution backend, and turns image files into 960 dimensional
embeddings, one image at a time or as a single batched forward pass.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np
import timm
import torch
from huggingface_hub import hf_hub_download, try_to_load_from_cache
from safetensors.torch import load_file

from ..config import FEATURE_SIZE, ModelSpec, NetworkKind
from ..errors import (
    DeviceError,
    FolderEmpty,
    FolderNotFound,
    InferenceError,
    WeightsFetchError,
)
from .device import ExecutionBackend
from .preprocess import image_to_tensor

logger = logging.getLogger(__name__)

WEIGHTS_FILENAME = "model.safetensors"
DEFAULT_CACHE_DIR = Path("./.cache")

PathLike = Union[str, Path]


def is_weights_cached(kind: NetworkKind, cache_dir: PathLike = DEFAULT_CACHE_DIR) -> bool:
    """Check whether the weights of a network kind are in the local cache."""
    cached = try_to_load_from_cache(
        kind.weights_repo(), WEIGHTS_FILENAME, cache_dir=str(cache_dir)
    )
    return isinstance(cached, str)


def fetch_weights(kind: NetworkKind, cache_dir: PathLike = DEFAULT_CACHE_DIR) -> Path:
    """
    Get the local weights file of a network kind.

    The cache is keyed by weights repository; the hub is only contacted
    on a cache miss.

    Raises:
        WeightsFetchError: If the weights cannot be downloaded
    """
    repo_id = kind.weights_repo()
    cached = try_to_load_from_cache(repo_id, WEIGHTS_FILENAME, cache_dir=str(cache_dir))
    if isinstance(cached, str):
        logger.debug(f"Weights for {repo_id} found in cache")
        return Path(cached)

    try:
        logger.info(f"Downloading weights: {repo_id}")
        return Path(
            hf_hub_download(repo_id, WEIGHTS_FILENAME, cache_dir=str(cache_dir))
        )
    except Exception as e:
        error_msg = f"Failed to fetch weights {repo_id}: {e}"
        logger.error(error_msg)
        raise WeightsFetchError(error_msg) from e


class FeatureExtractor:
    """
    MobileNetV4 backbone without its classifier head.

    The network is loaded once and never mutated afterwards, so a single
    instance can serve concurrent read-only inference calls.
    """

    def __init__(
        self,
        kind: NetworkKind,
        backend: ExecutionBackend,
        cache_dir: PathLike = DEFAULT_CACHE_DIR,
        workers: Optional[int] = None,
    ):
        """
        Initialize feature extractor.

        Args:
            kind: Network variant to load
            backend: Execution backend the weights are bound to
            cache_dir: Local weights cache directory
            workers: Threads used to preprocess a batch

        Raises:
            WeightsFetchError: If weights cannot be fetched
            DeviceError: If weights cannot be bound to the backend
        """
        self._kind = NetworkKind(kind)
        self._backend = backend
        self._workers = workers

        weights_path = fetch_weights(self._kind, cache_dir)
        self._network = self._load_network(weights_path)

    def _load_network(self, weights_path: Path) -> torch.nn.Module:
        """Build the architecture, load weights and bind them to the backend."""
        architecture = self._kind.architecture()
        try:
            logger.info(f"Loading {architecture} from {weights_path}")
            network = timm.create_model(architecture, pretrained=False)
            network.load_state_dict(load_file(str(weights_path)))
        except Exception as e:
            error_msg = f"Failed to load weights for {architecture}: {e}"
            logger.error(error_msg)
            raise WeightsFetchError(error_msg) from e

        try:
            network = self._backend.bind(network)
        except Exception as e:
            error_msg = f"Failed to bind {architecture} to {self._backend}: {e}"
            logger.error(error_msg)
            raise DeviceError(error_msg) from e

        logger.info(f"{architecture} loaded successfully on {self._backend}")
        return network

    @property
    def kind(self) -> NetworkKind:
        return self._kind

    @property
    def spec(self) -> ModelSpec:
        return self._kind.spec()

    @property
    def resolution(self) -> int:
        return self._kind.resolution()

    @property
    def device(self) -> torch.device:
        return self._backend.torch_device

    def _preprocess(self, path: PathLike) -> torch.Tensor:
        return image_to_tensor(path, (self.resolution, self.resolution))

    def _forward(self, batch: torch.Tensor) -> np.ndarray:
        """Run the backbone and pool its final feature map to (N, 960)."""
        try:
            features = self._backend.run(self._network, batch)
            pooled = features.mean(dim=(2, 3))
        except Exception as e:
            error_msg = f"Forward pass failed: {e}"
            logger.error(error_msg)
            raise InferenceError(error_msg) from e

        if pooled.shape[-1] != FEATURE_SIZE:
            error_msg = (
                f"Unexpected feature size: expected {FEATURE_SIZE}, "
                f"got {pooled.shape[-1]}"
            )
            logger.error(error_msg)
            raise InferenceError(error_msg)
        return pooled.numpy().astype(np.float32)

    def extract(self, image_path: PathLike) -> np.ndarray:
        """
        Extract the embedding of a single image.

        Args:
            image_path: Path of the image file

        Returns:
            float32 vector of length 960

        Raises:
            ImageIOError: If the file cannot be read
            ImageDecodeError: If the image cannot be decoded
            InferenceError: If the forward pass fails
        """
        tensor = self._preprocess(image_path)
        embedding = self._forward(tensor.unsqueeze(0))[0]

        logger.debug(f"Extracted embedding for {image_path}")
        return embedding

    def extract_batch(self, image_paths: Sequence[PathLike]) -> List[np.ndarray]:
        """
        Extract embeddings of many images in one forward pass.

        Images are preprocessed in parallel and stacked in input order. A
        single preprocessing failure fails the whole batch.

        Args:
            image_paths: Paths of the image files

        Returns:
            One float32 vector of length 960 per path, in input order
        """
        if len(image_paths) == 0:
            return []

        with ThreadPoolExecutor(max_workers=self._workers) as executor:
            tensors = list(executor.map(self._preprocess, image_paths))

        embeddings = self._forward(torch.stack(tensors))

        logger.debug(f"Extracted {len(image_paths)} embeddings in batch")
        return list(embeddings)

    def extract_folder(self, folder_path: PathLike) -> List[np.ndarray]:
        """
        Extract embeddings of every entry of a folder.

        Entries are taken in directory enumeration order, which depends on
        the platform and filesystem.

        Raises:
            FolderNotFound: If the path is not a directory
            FolderEmpty: If the directory has no entries
        """
        return self.extract_batch(list_folder(folder_path))

    def get_model_info(self) -> dict:
        """
        Get information about the loaded model.

        Returns:
            Dictionary containing model information
        """
        spec = self.spec
        return {
            "kind": self._kind.value,
            "architecture": spec.architecture,
            "weights_repo": spec.weights_repo,
            "resolution": spec.resolution,
            "device": str(self.device),
            "embedding_dim": FEATURE_SIZE,
        }


def list_folder(folder_path: PathLike) -> List[Path]:
    """List folder entries, rejecting missing and empty folders."""
    folder = Path(folder_path)
    if not folder.is_dir():
        raise FolderNotFound(f"Folder not found: {folder}")

    with os.scandir(folder) as entries:
        paths = [Path(entry.path) for entry in entries]
    if not paths:
        raise FolderEmpty(f"Folder is empty: {folder}")
    return paths
