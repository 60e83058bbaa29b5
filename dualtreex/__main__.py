#!/usr/bin/env python
"""Quick-start guide for dualtreex library usage.

Run with: python -m dualtreex

This module intentionally avoids importing dualtreex internals to provide
a fast, clean startup for displaying help text.
"""

from __future__ import annotations

QUICKSTART = """\
================================================================================
                                DUALTREEX
        Dual-tree k-nearest / k-furthest neighbour search for NumPy data
================================================================================

INSTALLATION
------------
    pip install dualtreex
    pip install "dualtreex[numba]"   # optional compiled distance kernel

BASIC USAGE (k nearest neighbours)
----------------------------------
    import numpy as np
    from dualtreex import KNNModel

    reference = np.random.randn(10000, 3)
    queries = np.random.randn(500, 3)

    model = KNNModel("kd")
    model.build_model(reference, leaf_size=20)

    # (Q, k) arrays, rows in query order, best first
    neighbors, distances = model.search(queries, k=10)

    # Self-search: a point is never its own neighbour
    neighbors, distances = model.search(k=10)

FURTHEST NEIGHBOURS, APPROXIMATION, ROTATION
--------------------------------------------
    from dualtreex import KFNModel, NSModel

    model = KFNModel("ball", epsilon=0.1)       # k-th distance within 1.1x
    model = NSModel("spill", tau=0.5)           # defeatist spill-tree search
    model = NSModel("r-star", random_basis=True, seed=0)

TREE TYPES
----------
    kd, ball, cover, r, r-star, x, spill

SEARCH MODES
------------
    model.build_model(reference, naive=True)        # exhaustive baseline
    model.build_model(reference, single_mode=True)  # single-tree traversal

PERSISTENCE
-----------
    model.dump("model.json")
    restored = KNNModel.load("model.json")

ENGINE-LEVEL API
----------------
    from dualtreex import NeighborSearch, build_tree

    tree = build_tree("kd", reference, leaf_size=10)
    engine = NeighborSearch("kd")
    engine.train(tree)                 # borrowed: the caller still owns tree
    neighbors, distances = engine.search(queries, k=3)

CONFIGURATION (environment)
---------------------------
    DUALTREEX_LOG_LEVEL              INFO
    DUALTREEX_ENABLE_DIAGNOSTICS     1
    DUALTREEX_ENABLE_NUMBA           0
    DUALTREEX_METRIC                 euclidean
    DUALTREEX_LEAF_SIZE              20
    DUALTREEX_ROTATION_MAX_ATTEMPTS  100
    DUALTREEX_NAIVE_BLOCK_SIZE       1024

================================================================================
"""


def main() -> None:
    """Print quick-start guide."""
    print(QUICKSTART)


if __name__ == "__main__":
    main()
