"""Spatial index back ends and the registry that builds them by name."""

from .binary_space import build_ball_tree, build_kd_tree
from .cover import build_cover_tree
from .rectangle import build_r_star_tree, build_r_tree, build_x_tree
from .registry import (
    build_tree,
    register_tree_builder,
    registered_tree_kinds,
    tree_parameters,
)
from .spill import build_spill_tree

register_tree_builder("kd", build_kd_tree, parameters=("leaf_size",))
register_tree_builder("ball", build_ball_tree, parameters=("leaf_size",))
register_tree_builder("cover", build_cover_tree, parameters=("base",))
register_tree_builder("r", build_r_tree, parameters=("max_leaf_size", "max_num_children"))
register_tree_builder(
    "r-star", build_r_star_tree, parameters=("max_leaf_size", "max_num_children")
)
register_tree_builder("x", build_x_tree, parameters=("max_leaf_size", "max_num_children"))
register_tree_builder("spill", build_spill_tree, parameters=("tau", "leaf_size", "rho"))

__all__ = [
    "build_ball_tree",
    "build_cover_tree",
    "build_kd_tree",
    "build_r_star_tree",
    "build_r_tree",
    "build_spill_tree",
    "build_tree",
    "build_x_tree",
    "register_tree_builder",
    "registered_tree_kinds",
    "tree_parameters",
]
