from __future__ import annotations

from typing import Any, Dict

from dualtreex import config as dx_config
from dualtreex.errors import InvalidArgumentError
from dualtreex.queries.knn import NeighborSearch
from dualtreex.trees import tree_parameters


def _check_leaf_size(leaf_size: int | None) -> int:
    if leaf_size is None:
        return dx_config.runtime_config().leaf_size
    if isinstance(leaf_size, bool) or int(leaf_size) != leaf_size or leaf_size < 1:
        raise InvalidArgumentError(f"leaf_size must be a positive integer, got {leaf_size!r}.")
    return int(leaf_size)


class LeafNeighborSearch(NeighborSearch):
    """Search engine over trees that bucket up to ``leaf_size`` points per leaf.

    Building such a tree reorders the points, so results are mapped back
    through the tree permutation before they are returned. Query trees built
    internally use the same leaf size as the reference tree.
    """

    engine_name = "leaf"

    def __init__(
        self,
        tree_kind: str = "kd",
        *,
        leaf_size: int | None = None,
        **kwargs: Any,
    ) -> None:
        leaf_size = _check_leaf_size(leaf_size)
        if "leaf_size" not in tree_parameters(tree_kind):
            raise InvalidArgumentError(f"Tree kind '{tree_kind}' has no leaf size parameter.")
        tree_params = dict(kwargs.pop("tree_params", None) or {})
        tree_params["leaf_size"] = leaf_size
        super().__init__(tree_kind, tree_params=tree_params, **kwargs)

    @property
    def leaf_size(self) -> int:
        return int(self._tree_params["leaf_size"])

    @classmethod
    def _from_state_args(cls, state: Dict[str, Any]) -> Dict[str, Any]:
        params = dict(state.get("tree_params") or {})
        leaf_size = params.pop("leaf_size", None)
        return {
            "tree_kind": state["tree_kind"],
            "leaf_size": leaf_size,
            "tree_params": params,
        }


__all__ = ["LeafNeighborSearch"]
