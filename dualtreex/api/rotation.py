from __future__ import annotations

import numpy as np

from dualtreex import config as dx_config
from dualtreex.errors import ConstructionError, InvalidArgumentError
from dualtreex.logging import get_logger

LOGGER = get_logger("api.rotation")


def random_basis(
    dimension: int,
    rng: np.random.Generator | None = None,
    *,
    max_attempts: int | None = None,
) -> np.ndarray:
    """Draw a random ``dimension x dimension`` rotation (orthonormal, determinant +1).

    A Gaussian matrix is factorised with QR and the columns of ``Q`` are
    sign-corrected so that ``R`` has a non-negative diagonal. Draws whose
    determinant comes out negative are rejected and redrawn, at most
    ``max_attempts`` times (``DUALTREEX_ROTATION_MAX_ATTEMPTS`` by default).
    """

    if isinstance(dimension, bool) or int(dimension) != dimension or dimension < 1:
        raise InvalidArgumentError(f"dimension must be a positive integer, got {dimension!r}.")
    dimension = int(dimension)
    if max_attempts is None:
        max_attempts = dx_config.runtime_config().rotation_max_attempts
    if max_attempts < 1:
        raise InvalidArgumentError(f"max_attempts must be positive, got {max_attempts}.")
    generator = rng if rng is not None else np.random.default_rng()
    for attempt in range(1, max_attempts + 1):
        q, r = np.linalg.qr(generator.standard_normal((dimension, dimension)))
        signs = np.sign(np.diag(r))
        signs[signs == 0] = 1.0
        q = q * signs[None, :]
        if np.linalg.det(q) >= 0.0:
            LOGGER.debug("Drew %dx%d rotation after %d attempt(s).", dimension, dimension, attempt)
            return q
    raise ConstructionError(
        f"Could not draw a proper rotation in {max_attempts} attempts (dimension={dimension})."
    )


def apply_rotation(points: np.ndarray, rotation: np.ndarray | None) -> np.ndarray:
    """Rotate each row of ``points``; ``None`` leaves them untouched."""

    if rotation is None:
        return points
    if points.shape[1] != rotation.shape[0]:
        raise InvalidArgumentError(
            f"Point dimensionality {points.shape[1]} does not match "
            f"rotation dimensionality {rotation.shape[0]}."
        )
    return points @ rotation.T


__all__ = ["apply_rotation", "random_basis"]
