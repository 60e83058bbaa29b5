"""Bookkeeping for trees that reorder their points.

``old_from_new[i]`` is the caller-order index of the point stored at tree
position ``i``. Results computed in tree order must be scattered back with
:func:`unmap_rows` before they reach the caller.
"""

from __future__ import annotations

import numpy as np

from dualtreex.errors import InvalidArgumentError


def identity_permutation(count: int) -> np.ndarray:
    return np.arange(int(count), dtype=np.int64)


def validate_permutation(old_from_new: np.ndarray, count: int | None = None) -> np.ndarray:
    """Return ``old_from_new`` as int64 after checking it is a bijection on ``[0, N)``."""

    perm = np.asarray(old_from_new)
    if perm.ndim != 1:
        raise InvalidArgumentError("Permutation must be one-dimensional.")
    if count is not None and perm.shape[0] != count:
        raise InvalidArgumentError(
            f"Permutation length {perm.shape[0]} does not match point count {count}."
        )
    perm = perm.astype(np.int64, copy=False)
    n = perm.shape[0]
    if n and (perm.min() < 0 or perm.max() >= n):
        raise InvalidArgumentError("Permutation entries fall outside [0, N).")
    seen = np.zeros(n, dtype=bool)
    seen[perm] = True
    if not seen.all():
        raise InvalidArgumentError("Permutation is not a bijection.")
    return perm


def invert_permutation(old_from_new: np.ndarray) -> np.ndarray:
    perm = np.asarray(old_from_new, dtype=np.int64)
    new_from_old = np.empty_like(perm)
    new_from_old[perm] = np.arange(perm.shape[0], dtype=np.int64)
    return new_from_old


def map_rows(values: np.ndarray, old_from_new: np.ndarray) -> np.ndarray:
    """Reorder caller-ordered rows into tree order."""

    return np.asarray(values)[np.asarray(old_from_new, dtype=np.int64)]


def unmap_rows(values: np.ndarray, old_from_new: np.ndarray) -> np.ndarray:
    """Scatter tree-ordered rows back into caller order."""

    arr = np.asarray(values)
    out = np.empty_like(arr)
    out[np.asarray(old_from_new, dtype=np.int64)] = arr
    return out


__all__ = [
    "identity_permutation",
    "invert_permutation",
    "map_rows",
    "unmap_rows",
    "validate_permutation",
]
