"""Approximate search over spill trees.

A spill tree lets sibling nodes share points within a band of width ``tau``
around the splitting hyperplane. Nodes built that way are searched
defeatist-style: the traversal follows only the side of the hyperplane the
query falls on and never backtracks into the sibling. Query trees are
always built without overlap so every query lands in exactly one leaf.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

import numpy as np

from dualtreex.core.permutation import unmap_rows
from dualtreex.core.tree import SpatialTree
from dualtreex.errors import InvalidArgumentError
from dualtreex.logging import get_logger
from dualtreex.queries.knn import SearchResult
from dualtreex.queries.leaf import LeafNeighborSearch

LOGGER = get_logger("queries.spill")


class SpillNeighborSearch(LeafNeighborSearch):
    engine_name = "spill"

    def __init__(
        self,
        *,
        tau: float = 0.0,
        leaf_size: int | None = None,
        **kwargs: Any,
    ) -> None:
        if tau < 0:
            raise InvalidArgumentError(f"tau must be non-negative, got {tau}.")
        kwargs.pop("tree_kind", None)
        tree_params = dict(kwargs.pop("tree_params", None) or {})
        tree_params["tau"] = float(tau)
        super().__init__("spill", leaf_size=leaf_size, tree_params=tree_params, **kwargs)

    @property
    def tau(self) -> float:
        return float(self._tree_params["tau"])

    def _query_tree_params(self) -> Dict[str, Any]:
        params = dict(self._tree_params)
        params["tau"] = 0.0
        return params

    def _self_query_tree(self) -> Tuple[SpatialTree, bool]:
        tree = self._ensure_tree()
        if float(tree.params.get("tau", 0.0)) == 0.0:
            return tree, False
        return self._build_query_tree(self.reference_set), True

    def search_tree(self, query_tree: SpatialTree, *, k: int) -> SearchResult:
        if query_tree.kind == "spill" and float(query_tree.params.get("tau", 0.0)) != 0.0:
            LOGGER.debug("Rebuilding query tree with tau=0 (was %s).", query_tree.params["tau"])
            rebuilt = self._build_query_tree(
                unmap_rows(query_tree.points, query_tree.old_from_new)
            )
            try:
                return super().search_tree(rebuilt, k=k)
            finally:
                rebuilt.release()
        return super().search_tree(query_tree, k=k)

    def overlap_fraction(self) -> float:
        """Share of internal nodes whose children overlap."""

        tree = self._ensure_tree()
        internal = [node for node in tree.root.iter_nodes() if not node.is_leaf]
        if not internal:
            return 0.0
        return float(np.mean([node.overlapping for node in internal]))

    @classmethod
    def _from_state_args(cls, state: Dict[str, Any]) -> Dict[str, Any]:
        params = dict(state.get("tree_params") or {})
        return {
            "tau": float(params.pop("tau", 0.0)),
            "leaf_size": params.pop("leaf_size", None),
            "tree_params": params,
        }


__all__ = ["SpillNeighborSearch"]
