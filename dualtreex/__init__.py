"""dualtreex: dual-tree k-nearest and k-furthest neighbour search.

Quick Start
-----------
>>> import numpy as np
>>> from dualtreex import KNNModel
>>>
>>> points = np.random.randn(5000, 3)
>>> model = KNNModel("kd")
>>> model.build_model(points, leaf_size=20)
>>> neighbors, distances = model.search(points[:100], k=5)

Classes
-------
NSModel, KNNModel, KFNModel : Back-end dispatch, rotation and persistence.
NeighborSearch : Dual-tree, single-tree and naive search engine.
LeafNeighborSearch, SpillNeighborSearch : Leaf-size and spill-tree engines.
"""

from importlib.metadata import version as _pkg_version

try:
    __version__ = _pkg_version("dualtreex")
except Exception:  # pragma: no cover - best effort during local development
    __version__ = "0.1.0"

from .api import KFNModel, KNNModel, NSModel, TreeType, random_basis
from .core import (
    FURTHEST,
    NEAREST,
    Ownership,
    SpatialTree,
    available_metrics,
    get_metric,
    get_sort_policy,
)
from .errors import (
    ConstructionError,
    DualTreeError,
    InvalidArgumentError,
    NotInitializedError,
    NotTrainedError,
    TreeReleasedError,
)
from .queries import LeafNeighborSearch, NeighborSearch, SpillNeighborSearch
from .trees import build_tree, registered_tree_kinds

__all__ = [
    "__version__",
    # Model API
    "NSModel",
    "KNNModel",
    "KFNModel",
    "TreeType",
    "random_basis",
    # Engines
    "NeighborSearch",
    "LeafNeighborSearch",
    "SpillNeighborSearch",
    # Trees and policies
    "build_tree",
    "registered_tree_kinds",
    "SpatialTree",
    "Ownership",
    "NEAREST",
    "FURTHEST",
    "get_sort_policy",
    "available_metrics",
    "get_metric",
    # Errors
    "DualTreeError",
    "InvalidArgumentError",
    "NotTrainedError",
    "NotInitializedError",
    "ConstructionError",
    "TreeReleasedError",
]
