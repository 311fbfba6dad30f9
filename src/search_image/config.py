"""
Configuration management for search-image.

This module holds the closed enumerations that select a network and a
compute device, the session values consumed by the core (DbConfig and
MobilenetConfig), and the environment backed Settings used by the CLI.
"""

from enum import Enum
from pathlib import Path
from typing import Literal, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

FEATURE_SIZE = 960


class ModelSpec(NamedTuple):
    """Resolution, timm architecture and weights repository of a network."""

    resolution: int
    architecture: str
    weights_repo: str


class NetworkKind(str, Enum):
    """MobileNetV4 variants supported by the extractor."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    HYBRID_MEDIUM = "hybrid_medium"
    HYBRID_LARGE = "hybrid_large"

    def spec(self) -> ModelSpec:
        """Get the model specification for this network kind."""
        return _MODEL_SPECS[self]

    def resolution(self) -> int:
        return self.spec().resolution

    def architecture(self) -> str:
        return self.spec().architecture

    def weights_repo(self) -> str:
        return self.spec().weights_repo


_MODEL_SPECS = {
    NetworkKind.SMALL: ModelSpec(
        224, "mobilenetv4_conv_small", "timm/mobilenetv4_conv_small.e2400_r224_in1k"
    ),
    NetworkKind.MEDIUM: ModelSpec(
        256, "mobilenetv4_conv_medium", "timm/mobilenetv4_conv_medium.e500_r256_in1k"
    ),
    NetworkKind.LARGE: ModelSpec(
        384, "mobilenetv4_conv_large", "timm/mobilenetv4_conv_large.e600_r384_in1k"
    ),
    NetworkKind.HYBRID_MEDIUM: ModelSpec(
        256,
        "mobilenetv4_hybrid_medium",
        "timm/mobilenetv4_hybrid_medium.ix_e550_r256_in1k",
    ),
    NetworkKind.HYBRID_LARGE: ModelSpec(
        384,
        "mobilenetv4_hybrid_large",
        "timm/mobilenetv4_hybrid_large.ix_e600_r384_in1k",
    ),
}


class Device(str, Enum):
    """Compute devices a session can request."""

    CPU = "cpu"
    GPU = "gpu"
    ACCELERATOR = "accelerator"


class DbConfig(BaseModel):
    """Vector store endpoint and collection."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(default="127.0.0.1", description="Qdrant host")
    port: int = Field(default=6333, description="Qdrant port")
    collection: str = Field(default="images", description="Collection name")
    timeout: int = Field(
        default=30, description="Connect and request timeout in seconds"
    )

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


class MobilenetConfig(BaseModel):
    """Network kind and device of an extraction session."""

    model_config = ConfigDict(frozen=True)

    kind: NetworkKind = Field(
        default=NetworkKind.HYBRID_LARGE, description="MobileNetV4 variant"
    )
    device: Device = Field(default=Device.CPU, description="Compute device")


class Settings(BaseSettings):
    """Application configuration settings."""

    # Vector store settings
    db_host: str = Field(default="127.0.0.1", description="Qdrant host")
    db_port: int = Field(default=6333, description="Qdrant port")
    collection: str = Field(default="images", description="Qdrant collection")
    timeout: int = Field(default=30, description="Store timeout in seconds")

    # Model settings
    network_kind: NetworkKind = Field(
        default=NetworkKind.HYBRID_LARGE, description="MobileNetV4 variant"
    )
    device: Device = Field(default=Device.CPU, description="Compute device")
    weights_cache_dir: Path = Field(
        default=Path("./.cache"), description="Local cache for model weights"
    )
    preprocess_workers: Optional[int] = Field(
        default=None, description="Threads used to preprocess a batch"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )

    class Config:
        """Pydantic configuration."""

        env_prefix = "SEARCH_IMAGE_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        """Accept log level names in any case."""
        return v.upper() if isinstance(v, str) else v

    def db_config(self) -> DbConfig:
        return DbConfig(
            host=self.db_host,
            port=self.db_port,
            collection=self.collection,
            timeout=self.timeout,
        )

    def mobilenet_config(self) -> MobilenetConfig:
        return MobilenetConfig(kind=self.network_kind, device=self.device)


def get_settings() -> Settings:
    """Get application settings instance."""
    return Settings()
