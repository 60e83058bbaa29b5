from __future__ import annotations


class DualTreeError(Exception):
    """Base class for every error raised by dualtreex."""


class InvalidArgumentError(DualTreeError, ValueError):
    """Raised for bad input: empty sets, bad ``k``, negative parameters, shape mismatches."""


class NotTrainedError(DualTreeError, RuntimeError):
    """Raised when a search engine is queried before ``train``."""


class NotInitializedError(DualTreeError, RuntimeError):
    """Raised when a model is used before ``build_model`` installed an engine."""


class ConstructionError(DualTreeError, RuntimeError):
    """Raised when a model cannot instantiate the requested engine."""


class TreeReleasedError(DualTreeError, RuntimeError):
    """Raised when a spatial tree is used after it was released by its owner."""


__all__ = [
    "DualTreeError",
    "InvalidArgumentError",
    "NotTrainedError",
    "NotInitializedError",
    "ConstructionError",
    "TreeReleasedError",
]
