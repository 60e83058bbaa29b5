from __future__ import annotations

from typing import Tuple

import numpy as np
from numpy.random import Generator, default_rng

Array = np.ndarray


def _ensure_rng(rng: Generator | None) -> Generator:
    return rng or default_rng()


def gaussian_points(
    rng: Generator | None,
    count: int,
    dimension: int,
    *,
    dtype: np.dtype | type[np.floating] = np.float64,
) -> Array:
    """Sample `count` Gaussian points with the requested dimensionality."""

    generator = _ensure_rng(rng)
    if count <= 0 or dimension <= 0:
        return np.zeros((max(count, 0), max(dimension, 0)), dtype=dtype)
    samples = generator.normal(loc=0.0, scale=1.0, size=(count, dimension))
    return np.asarray(samples, dtype=dtype)


def gaussian_dataset(
    rng: Generator | None,
    *,
    tree_points: int,
    queries: int,
    dimension: int,
    dtype: np.dtype | type[np.floating] = np.float64,
) -> Tuple[Array, Array]:
    """Return a tuple `(points, queries)` drawn from the same Gaussian."""

    generator = _ensure_rng(rng)
    points = gaussian_points(generator, tree_points, dimension, dtype=dtype)
    query_points = gaussian_points(generator, queries, dimension, dtype=dtype)
    return points, query_points


def skewed_points(rng: Generator | None, count: int, dimension: int) -> Array:
    """Points stretched along a single diagonal direction."""

    generator = _ensure_rng(rng)
    scales = np.geomspace(50.0, 0.01, dimension)
    samples = generator.normal(size=(count, dimension)) * scales[None, :]
    basis, _ = np.linalg.qr(generator.normal(size=(dimension, dimension)))
    return samples @ basis.T


def geometric_chain(count: int, dimension: int = 1) -> Array:
    """Points `2**-i` along the first axis; midpoint splits peel off one point per level."""

    points = np.zeros((count, dimension), dtype=np.float64)
    points[:, 0] = 2.0 ** -np.arange(count, dtype=np.float64)
    return points


def brute_force_neighbors(
    reference: Array,
    queries: Array | None,
    k: int,
    *,
    furthest: bool = False,
) -> Tuple[Array, Array]:
    """Exhaustive `(indices, distances)` baseline; `queries=None` excludes self matches."""

    ref = np.asarray(reference, dtype=np.float64)
    qry = ref if queries is None else np.asarray(queries, dtype=np.float64)
    diff = qry[:, None, :] - ref[None, :, :]
    dists = np.sqrt(np.sum(diff * diff, axis=-1))
    keys = -dists if furthest else dists.copy()
    if queries is None:
        np.fill_diagonal(keys, np.inf)
    order = np.argsort(keys, axis=1, kind="stable")[:, :k]
    return order, np.take_along_axis(dists, order, axis=1)
