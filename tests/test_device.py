"""
Tests for device resolution.
"""

from unittest.mock import patch

import pytest
import torch

from search_image.config import Device
from search_image.errors import (
    AcceleratorUnavailable,
    CudaUnavailable,
    DeviceUnavailable,
)
from search_image.models.device import (
    AcceleratorBackend,
    CpuBackend,
    CudaBackend,
    resolve_device,
)


class TestResolveDevice:
    """Test mapping from requested device to backend."""

    def test_cpu(self):
        backend = resolve_device(Device.CPU)

        assert isinstance(backend, CpuBackend)
        assert backend.torch_device == torch.device("cpu")

    def test_gpu_unavailable(self):
        with patch("torch.cuda.is_available", return_value=False):
            with pytest.raises(CudaUnavailable):
                resolve_device(Device.GPU)

    def test_gpu_available(self):
        with patch("torch.cuda.is_available", return_value=True):
            backend = resolve_device(Device.GPU)

        assert isinstance(backend, CudaBackend)
        assert backend.torch_device.type == "cuda"

    def test_accelerator_unavailable(self):
        with patch("torch.backends.mps.is_available", return_value=False):
            with pytest.raises(AcceleratorUnavailable):
                resolve_device(Device.ACCELERATOR)

    def test_accelerator_available(self):
        with patch("torch.backends.mps.is_available", return_value=True):
            backend = resolve_device(Device.ACCELERATOR)

        assert isinstance(backend, AcceleratorBackend)

    def test_unavailable_errors_are_distinguishable(self):
        assert issubclass(CudaUnavailable, DeviceUnavailable)
        assert issubclass(AcceleratorUnavailable, DeviceUnavailable)
        assert not issubclass(CudaUnavailable, AcceleratorUnavailable)

    def test_accepts_string_value(self):
        assert isinstance(resolve_device("cpu"), CpuBackend)


class TestBackendRun:
    """Test forward passes through a backend."""

    def test_run_returns_host_tensor(self):
        class Network(torch.nn.Module):
            def forward_features(self, x):
                return x * 2

        backend = CpuBackend()
        network = backend.bind(Network())
        result = backend.run(network, torch.ones(1, 3, 2, 2))

        assert result.device.type == "cpu"
        assert torch.equal(result, torch.full((1, 3, 2, 2), 2.0))
        assert not network.training
