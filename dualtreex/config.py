from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict

_LOGGER = logging.getLogger("dualtreex")

_SUPPORTED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_DEFAULT_LEAF_SIZE = 20
_DEFAULT_ROTATION_MAX_ATTEMPTS = 100
_DEFAULT_NAIVE_BLOCK_SIZE = 1024


def _bool_from_env(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    value = value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_optional_int(raw: str | None) -> int | None:
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid integer value '{raw}'") from exc


def _parse_positive_int(raw: str | None, *, name: str, default: int) -> int:
    value = _parse_optional_int(raw)
    if value is None:
        return default
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}.")
    return value


def _normalise_log_level(value: str | None) -> str:
    if value is None:
        return "INFO"
    level = value.strip().upper()
    if level not in _SUPPORTED_LOG_LEVELS:
        raise ValueError(
            f"Unsupported log level '{value}'. Expected one of {_SUPPORTED_LOG_LEVELS}."
        )
    return level


@dataclass(frozen=True)
class RuntimeConfig:
    log_level: str
    enable_diagnostics: bool
    enable_numba: bool
    metric: str
    leaf_size: int
    rotation_max_attempts: int
    naive_block_size: int

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        log_level = _normalise_log_level(os.getenv("DUALTREEX_LOG_LEVEL"))
        enable_diagnostics = _bool_from_env(
            os.getenv("DUALTREEX_ENABLE_DIAGNOSTICS"), default=True
        )
        enable_numba = _bool_from_env(os.getenv("DUALTREEX_ENABLE_NUMBA"), default=False)
        metric = os.getenv("DUALTREEX_METRIC", "euclidean").strip().lower() or "euclidean"
        leaf_size = _parse_positive_int(
            os.getenv("DUALTREEX_LEAF_SIZE"),
            name="DUALTREEX_LEAF_SIZE",
            default=_DEFAULT_LEAF_SIZE,
        )
        rotation_max_attempts = _parse_positive_int(
            os.getenv("DUALTREEX_ROTATION_MAX_ATTEMPTS"),
            name="DUALTREEX_ROTATION_MAX_ATTEMPTS",
            default=_DEFAULT_ROTATION_MAX_ATTEMPTS,
        )
        naive_block_size = _parse_positive_int(
            os.getenv("DUALTREEX_NAIVE_BLOCK_SIZE"),
            name="DUALTREEX_NAIVE_BLOCK_SIZE",
            default=_DEFAULT_NAIVE_BLOCK_SIZE,
        )
        return cls(
            log_level=log_level,
            enable_diagnostics=enable_diagnostics,
            enable_numba=enable_numba,
            metric=metric,
            leaf_size=leaf_size,
            rotation_max_attempts=rotation_max_attempts,
            naive_block_size=naive_block_size,
        )


def _configure_logging(level: str) -> None:
    logger = logging.getLogger("dualtreex")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(level)
        formatter = logging.Formatter("%(levelname)s %(name)s: %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)


@lru_cache(maxsize=None)
def runtime_config() -> RuntimeConfig:
    config = RuntimeConfig.from_env()
    _configure_logging(config.log_level)
    return config


def reset_runtime_config_cache() -> None:
    runtime_config.cache_clear()


def describe_runtime() -> Dict[str, Any]:
    """Return a serialisable view of the active runtime configuration."""

    config = runtime_config()
    return {
        "log_level": config.log_level,
        "enable_diagnostics": config.enable_diagnostics,
        "enable_numba": config.enable_numba,
        "metric": config.metric,
        "leaf_size": config.leaf_size,
        "rotation_max_attempts": config.rotation_max_attempts,
        "naive_block_size": config.naive_block_size,
    }


__all__ = [
    "RuntimeConfig",
    "runtime_config",
    "reset_runtime_config_cache",
    "describe_runtime",
]
