"""Neighbour search engines."""

from .knn import NeighborSearch, SearchResult, TraversalStats
from .leaf import LeafNeighborSearch
from .spill import SpillNeighborSearch

__all__ = [
    "LeafNeighborSearch",
    "NeighborSearch",
    "SearchResult",
    "SpillNeighborSearch",
    "TraversalStats",
]
