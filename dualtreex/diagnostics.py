from __future__ import annotations

import logging
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator

from dualtreex import config as dx_config

try:  # pragma: no cover - unavailable on Windows
    import resource
except ModuleNotFoundError:  # pragma: no cover
    resource = None  # type: ignore


def _rss_bytes() -> int | None:
    if resource is None:
        return None
    usage = resource.getrusage(resource.RUSAGE_SELF)
    # ru_maxrss is reported in KiB on Linux and bytes on macOS.
    scale = 1 if sys.platform == "darwin" else 1024
    return int(usage.ru_maxrss) * scale


def _cpu_user_seconds() -> float | None:
    if resource is None:
        return None
    return float(resource.getrusage(resource.RUSAGE_SELF).ru_utime)


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.3f}"
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


@dataclass
class OperationLog:
    """Mutable record attached to one logged operation."""

    op: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def add_metadata(self, **values: Any) -> None:
        self.metadata.update(values)


@contextmanager
def log_operation(logger: logging.Logger, op: str) -> Iterator[OperationLog]:
    """Time the wrapped block and emit a single ``op=...`` resource line."""

    runtime = dx_config.runtime_config()
    diagnostics = runtime.enable_diagnostics
    record = OperationLog(op=op)
    wall_start = time.perf_counter()
    cpu_start = _cpu_user_seconds() if diagnostics else None
    rss_start = _rss_bytes() if diagnostics else None
    try:
        yield record
    finally:
        wall_ms = (time.perf_counter() - wall_start) * 1000.0
        parts = [f"op={op}", f"wall_ms={wall_ms:.3f}"]
        if diagnostics and cpu_start is not None:
            cpu_end = _cpu_user_seconds()
            parts.append(f"cpu_user_ms={(cpu_end - cpu_start) * 1000.0:.3f}")
        else:
            parts.append("cpu_user_ms=NA")
        if diagnostics and rss_start is not None:
            parts.append(f"rss_delta={_rss_bytes() - rss_start}")
        else:
            parts.append("rss_delta=NA")
        for key, value in record.metadata.items():
            parts.append(f"{key}={_format_value(value)}")
        logger.info(" ".join(parts))


__all__ = ["OperationLog", "log_operation"]
