"""Application configuration handling."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import pydantic
import yaml
from pydantic import BaseModel, Field, field_validator

from kb_retrieval.core.errors import ValidationError
from kb_retrieval.models.entities import SearchMode

logger = logging.getLogger(__name__)

ENV_PREFIX = "KBR_"
DEFAULT_CONFIG_PATH = Path("~/.config/kb-retrieval/config.yaml")
DISABLED_VALUES = {"", "none", "off"}

# YAML section -> key -> Settings field.
_SECTIONS: Mapping[str, Mapping[str, str]] = {
    "embeddings": {
        "model": "embedding_model",
        "dim": "embedding_dim",
        "timeout_s": "embedding_timeout_s",
        "workers": "embedding_workers",
        "cache_size": "embedding_cache_size",
        "cache_ttl_s": "embedding_cache_ttl_s",
    },
    "retrieval": {
        "top_k": "top_k",
        "threshold": "similarity_threshold",
        "use_query_expansion": "use_query_expansion",
        "preprocess": "preprocess_queries",
        "query_variants": "query_variants",
        "search_mode": "search_mode",
        "keyword_weight": "keyword_weight",
    },
    "rerank": {
        "strategy": "rerank_strategy",
        "strict": "rerank_strict",
        "seed": "rerank_seed",
    },
    "logging": {
        "level": "log_level",
        "json": "log_json",
    },
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    embedding_model: str = "hashed-bow-v1"
    embedding_dim: int = Field(default=384, ge=1)
    embedding_timeout_s: float | None = Field(default=10.0, gt=0)
    embedding_workers: int = Field(default=1, ge=1)
    embedding_cache_size: int = Field(default=1000, ge=0)
    embedding_cache_ttl_s: float = Field(default=24 * 60 * 60, gt=0)
    top_k: int = Field(default=3, ge=1)
    similarity_threshold: float = Field(default=0.0, ge=0.0, le=100.0)
    use_query_expansion: bool = True
    preprocess_queries: bool = True
    query_variants: int = Field(default=0, ge=0, le=10)
    search_mode: SearchMode = SearchMode.VECTOR
    keyword_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    rerank_strategy: str = "reciprocal-rank-fusion"
    rerank_strict: bool = False
    rerank_seed: int = 0
    log_level: str = "INFO"
    log_json: bool = True

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("embedding_timeout_s", mode="before")
    @classmethod
    def _disable_timeout(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in DISABLED_VALUES:
            return None
        return value

    @field_validator("rerank_strategy", "search_mode", mode="before")
    @classmethod
    def _normalize_strategy(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: Any) -> str:
        if isinstance(value, str):
            return value.upper()
        raise TypeError("log_level must be a string")

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay ``KBR_*`` env vars; fall back to defaults.

        Malformed files and out-of-range values raise ``ValidationError``.
        """
        config_path = resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path is not None and config_path.exists():
            data.update(_read_yaml(config_path))
        data.update(_load_env_overrides(os.environ))
        try:
            return cls(**data)
        except pydantic.ValidationError as exc:
            source = str(config_path) if config_path else "environment"
            raise ValidationError(f"Invalid configuration from {source}: {exc}") from exc


def resolve_config_path(path: Path | None = None) -> Path | None:
    """Explicit path, then ``KBR_CONFIG``, then the default file if present."""
    if path is not None:
        return path.expanduser()
    env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    resolved_default = DEFAULT_CONFIG_PATH.expanduser()
    return resolved_default if resolved_default.exists() else None


def _read_yaml(config_path: Path) -> dict[str, Any]:
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ValidationError(f"Cannot parse config file {config_path}: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise ValidationError(f"Config file {config_path} must contain a mapping")
    return _flatten_yaml(raw)


def _flatten_yaml(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Map ``section: {key: value}`` blocks (or bare field names) onto Settings fields."""
    flat: dict[str, Any] = {}
    for section, value in raw.items():
        fields = _SECTIONS.get(section)
        if fields is not None and isinstance(value, Mapping):
            for key, item in value.items():
                if key in fields:
                    flat[fields[key]] = item
                else:
                    logger.warning("Ignoring unknown config key %s.%s", section, key)
        elif section in Settings.model_fields:
            flat[section] = value
        else:
            logger.warning("Ignoring unknown config section %s", section)
    return flat


def _load_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Map ``KBR_<FIELD>`` environment variables onto Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings", "resolve_config_path"]
