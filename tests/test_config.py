"""
Tests for model selection and session configuration.
"""

import pytest

from search_image.config import (
    DbConfig,
    Device,
    MobilenetConfig,
    ModelSpec,
    NetworkKind,
    Settings,
)


class TestNetworkKind:
    """Test the network kind to model mapping."""

    @pytest.mark.parametrize("kind", list(NetworkKind))
    def test_every_kind_has_a_model_spec(self, kind):
        spec = kind.spec()

        assert isinstance(spec, ModelSpec)
        assert spec.resolution > 0
        assert spec.architecture.startswith("mobilenetv4_")
        assert spec.weights_repo.startswith(f"timm/{spec.architecture}.")
        assert spec.weights_repo.endswith("_in1k")

    @pytest.mark.parametrize(
        "kind,resolution",
        [
            (NetworkKind.SMALL, 224),
            (NetworkKind.MEDIUM, 256),
            (NetworkKind.HYBRID_MEDIUM, 256),
            (NetworkKind.LARGE, 384),
            (NetworkKind.HYBRID_LARGE, 384),
        ],
    )
    def test_resolution(self, kind, resolution):
        assert kind.resolution() == resolution

    def test_weights_repo(self):
        assert (
            NetworkKind.SMALL.weights_repo()
            == "timm/mobilenetv4_conv_small.e2400_r224_in1k"
        )
        assert (
            NetworkKind.HYBRID_LARGE.weights_repo()
            == "timm/mobilenetv4_hybrid_large.ix_e600_r384_in1k"
        )

    def test_parse_from_value(self):
        assert NetworkKind("hybrid_medium") is NetworkKind.HYBRID_MEDIUM


class TestSessionConfig:
    """Test DbConfig, MobilenetConfig and Settings."""

    def test_db_config_defaults(self):
        config = DbConfig()

        assert config.url == "http://127.0.0.1:6333"
        assert config.collection == "images"
        assert config.timeout == 30

    def test_configs_are_frozen(self):
        config = MobilenetConfig()

        with pytest.raises(ValueError):
            config.kind = NetworkKind.SMALL

    def test_mobilenet_defaults(self):
        config = MobilenetConfig()

        assert config.kind is NetworkKind.HYBRID_LARGE
        assert config.device is Device.CPU

    def test_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("SEARCH_IMAGE_DB_HOST", "qdrant.local")
        monkeypatch.setenv("SEARCH_IMAGE_DB_PORT", "6400")
        monkeypatch.setenv("SEARCH_IMAGE_NETWORK_KIND", "small")
        monkeypatch.setenv("SEARCH_IMAGE_DEVICE", "gpu")

        settings = Settings(_env_file=None)

        assert settings.db_config() == DbConfig(host="qdrant.local", port=6400)
        assert settings.mobilenet_config() == MobilenetConfig(
            kind=NetworkKind.SMALL, device=Device.GPU
        )
