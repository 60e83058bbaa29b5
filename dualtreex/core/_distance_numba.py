from __future__ import annotations

import numpy as np

try:  # pragma: no cover - optional dependency
    import numba as nb

    NUMBA_DISTANCE_AVAILABLE = True
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    nb = None  # type: ignore
    NUMBA_DISTANCE_AVAILABLE = False


if NUMBA_DISTANCE_AVAILABLE:

    @nb.njit(cache=True, fastmath=False)
    def _euclidean_block(lhs: np.ndarray, rhs: np.ndarray) -> np.ndarray:  # pragma: no cover - compiled
        rows = lhs.shape[0]
        cols = rhs.shape[0]
        dims = lhs.shape[1]
        out = np.empty((rows, cols), dtype=np.float64)
        for i in range(rows):
            for j in range(cols):
                acc = 0.0
                for d in range(dims):
                    diff = lhs[i, d] - rhs[j, d]
                    acc += diff * diff
                out[i, j] = np.sqrt(acc)
        return out


def euclidean_block_numba(lhs: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    """Dense Euclidean distances between two row blocks via the compiled kernel."""

    if not NUMBA_DISTANCE_AVAILABLE:
        raise RuntimeError("Numba is not installed; install the 'numba' extra.")
    return _euclidean_block(
        np.ascontiguousarray(lhs, dtype=np.float64),
        np.ascontiguousarray(rhs, dtype=np.float64),
    )


__all__ = ["NUMBA_DISTANCE_AVAILABLE", "euclidean_block_numba"]
