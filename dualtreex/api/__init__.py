"""Model-level façade: back-end dispatch, random rotation and persistence."""

from .model import SCHEMA_ID, KFNModel, KNNModel, NSModel, TreeType
from .rotation import apply_rotation, random_basis

__all__ = [
    "KFNModel",
    "KNNModel",
    "NSModel",
    "SCHEMA_ID",
    "TreeType",
    "apply_rotation",
    "random_basis",
]
