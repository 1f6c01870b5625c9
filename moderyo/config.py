"""Client configuration.

:class:`ModeryoConfig` is an immutable record handed to the client at
construction.  How a host fills it in is up to the host; YAML and
environment loaders are provided for the CLI and for scripts.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from moderyo.exceptions import ValidationError
from moderyo.models import EnforcementMode, OfflineMode, RiskProfile
from moderyo.protocol.codec import DEFAULT_MODEL

DEFAULT_BASE_URL = "https://api.moderyo.com"

_ENV_FIELDS = {
    "MODERYO_API_KEY": "api_key",
    "MODERYO_BASE_URL": "base_url",
    "MODERYO_TIMEOUT": "timeout",
    "MODERYO_MAX_RETRIES": "max_retries",
    "MODERYO_OFFLINE_MODE": "offline_mode",
}


class ModeryoConfig(BaseModel):
    """Immutable client settings."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)
    default_model: str = DEFAULT_MODEL
    offline_mode: OfflineMode = OfflineMode.ALLOW_ALL
    default_mode: Optional[EnforcementMode] = None
    default_risk: Optional[RiskProfile] = None
    local_filter_words: frozenset[str] = frozenset()

    @field_validator("api_key")
    @classmethod
    def _require_api_key(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("API key is required")
        return value

    @field_validator("base_url")
    @classmethod
    def _normalize_base_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("base URL is required")
        return value

    @field_validator("default_mode", "default_risk", mode="before")
    @classmethod
    def _blank_is_unset(cls, value: Any) -> Any:
        return None if value == "" else value

    @field_validator("local_filter_words", mode="before")
    @classmethod
    def _fold_words(cls, value: Any) -> frozenset[str]:
        if value is None:
            return frozenset()
        if isinstance(value, str):
            value = value.split(",")
        return frozenset(w.strip().lower() for w in value if w and w.strip())

    # -- construction --------------------------------------------------------

    @classmethod
    def create(cls, **values: Any) -> ModeryoConfig:
        """Build a config, reporting problems as :class:`ValidationError`."""
        try:
            return cls(**values)
        except pydantic.ValidationError as exc:
            first = exc.errors()[0]
            where = ".".join(str(p) for p in first.get("loc", ())) or "config"
            raise ValidationError(
                f"Invalid configuration ({where}): {first.get('msg', exc)}", field=where
            ) from exc

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None, **overrides: Any) -> ModeryoConfig:
        """Build a config from ``MODERYO_*`` environment variables."""
        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {
            name: environ[var] for var, name in _ENV_FIELDS.items() if environ.get(var)
        }
        values.setdefault("api_key", "")
        values.update(overrides)
        return cls.create(**values)


def load_config(path: str | Path, **overrides: Any) -> ModeryoConfig:
    """Load a config from a YAML file.

    The settings may sit at the top level or under a ``moderyo:`` key.
    Keyword *overrides* win over file values.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ValidationError(f"Could not read config {path}: {exc}", field="config") from exc

    if not isinstance(data, dict):
        raise ValidationError(f"Config {path} must be a mapping", field="config")
    if isinstance(data.get("moderyo"), dict):
        data = data["moderyo"]

    values = {k: v for k, v in data.items() if v is not None}
    values.update(overrides)
    if not values.get("api_key"):
        values["api_key"] = os.environ.get("MODERYO_API_KEY", "")
    return ModeryoConfig.create(**values)
