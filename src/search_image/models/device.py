"""
Execution backends for forward inference.

A backend binds a torch device and runs a forward pass on it. The resolver
maps a requested Device to exactly one backend and raises when that device
is missing; it never substitutes another one.
"""

import logging

import torch
from torch import nn

from ..config import Device
from ..errors import AcceleratorUnavailable, CudaUnavailable

logger = logging.getLogger(__name__)


class ExecutionBackend:
    """Base class for a device bound forward pass."""

    name = "base"

    def __init__(self, torch_device: torch.device):
        self.torch_device = torch_device

    def bind(self, network: nn.Module) -> nn.Module:
        """Move network weights to this backend and switch to eval mode."""
        return network.to(self.torch_device).eval()

    def run(self, network: nn.Module, batch: torch.Tensor) -> torch.Tensor:
        """
        Run one forward pass over a batch.

        Args:
            network: Network already bound to this backend
            batch: Input tensor with shape (N, 3, H, W), on any device

        Returns:
            Feature map tensor moved back to host memory
        """
        with torch.inference_mode():
            features = network.forward_features(batch.to(self.torch_device))
        return features.float().cpu()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.torch_device})"


class CpuBackend(ExecutionBackend):
    name = "cpu"

    def __init__(self):
        super().__init__(torch.device("cpu"))


class CudaBackend(ExecutionBackend):
    name = "cuda"

    def __init__(self, index: int = 0):
        if not torch.cuda.is_available():
            raise CudaUnavailable("CUDA not available")
        super().__init__(torch.device("cuda", index))


class AcceleratorBackend(ExecutionBackend):
    """Apple Metal Performance Shaders backend."""

    name = "mps"

    def __init__(self):
        mps = getattr(torch.backends, "mps", None)
        if mps is None or not mps.is_available():
            raise AcceleratorUnavailable("MPS accelerator not available")
        super().__init__(torch.device("mps"))


_BACKENDS = {
    Device.CPU: CpuBackend,
    Device.GPU: CudaBackend,
    Device.ACCELERATOR: AcceleratorBackend,
}


def resolve_device(device: Device) -> ExecutionBackend:
    """
    Resolve a requested device to its execution backend.

    Raises:
        CudaUnavailable: GPU requested without a usable CUDA runtime
        AcceleratorUnavailable: Accelerator requested without MPS support
    """
    backend = _BACKENDS[Device(device)]()
    logger.info(f"Using {backend.name} backend for inference")
    return backend
