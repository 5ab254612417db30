"""Environment-based configuration for multilabel."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from multilabel.errors import ConfigurationError


class Settings(BaseSettings):
    """Runtime settings loaded from MULTILABEL_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MULTILABEL_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Prediction
    top_n: int = Field(default=5, ge=1)
    head_names: tuple[str, str] = ("gender", "race")

    # Evaluation
    image_root: str | None = None
    fail_fast: bool = True

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Model artifacts (HTTP API only; the CLI takes them as arguments)
    model_path: str | None = None
    mean_path: str | None = None
    label_paths: tuple[str, str] | None = None

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=209_715_200, ge=1)

    # Inference queue
    max_pending: int = Field(default=4, ge=1)
    queue_timeout: float = Field(default=5.0, gt=0)


def get_settings(**overrides: Any) -> Settings:
    """Create settings, letting explicit overrides win over the environment.

    Raises:
        ConfigurationError: If any value fails validation.
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid settings: {exc}") from exc
