from __future__ import annotations

from typing import Any

import numpy as np

from dualtreex.errors import InvalidArgumentError


def as_point_set(values: Any, *, name: str = "points", allow_empty: bool = False) -> np.ndarray:
    """Coerce ``values`` to a float64 ``(N, D)`` array; 1-D input is one point."""

    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr[None, :] if arr.shape[0] else arr.reshape(0, 0)
    if arr.ndim != 2:
        raise InvalidArgumentError(f"{name} must be a 2-D array of shape (N, D).")
    if arr.shape[0] == 0 and not allow_empty:
        raise InvalidArgumentError(f"{name} must contain at least one point.")
    if arr.shape[0] and arr.shape[1] == 0:
        raise InvalidArgumentError(f"{name} must have at least one dimension.")
    if not np.all(np.isfinite(arr)):
        raise InvalidArgumentError(f"{name} contains NaN or infinite coordinates.")
    return arr


__all__ = ["as_point_set"]
