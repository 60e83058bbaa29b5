from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Tuple

import numpy as np

from dualtreex import config as dx_config
from dualtreex.core.bounds import HRectBound
from dualtreex.core.metrics import Metric, get_metric
from dualtreex.core.permutation import unmap_rows
from dualtreex.core.points import as_point_set
from dualtreex.core.results import NeighborResults, QueryNodeBounds
from dualtreex.core.sort import SortPolicy, get_sort_policy
from dualtreex.core.tree import Ownership, SpatialTree, TreeNode
from dualtreex.diagnostics import log_operation
from dualtreex.errors import InvalidArgumentError, NotTrainedError
from dualtreex.logging import get_logger
from dualtreex.trees import build_tree, registered_tree_kinds

LOGGER = get_logger("queries.knn")

SearchResult = Tuple[np.ndarray, np.ndarray]


@dataclass
class TraversalStats:
    """Counters collected while one search runs."""

    base_cases: int = 0
    prunes: int = 0
    scores: int = 0
    distance_evaluations: int = 0
    fallback_queries: int = 0


class _DualTreeTraversal:
    """Branch-and-bound over (query node, reference node) pairs.

    Pairs are visited depth-first from an explicit stack, in the order a
    recursive traversal would visit them, with the reference children of
    each pair queued best-scoring first.
    """

    def __init__(
        self,
        *,
        policy: SortPolicy,
        metric: Metric,
        epsilon: float,
        results: NeighborResults,
        query_tree: SpatialTree,
        reference_points: np.ndarray,
        reference_ids: np.ndarray,
        self_search: bool,
        stats: TraversalStats,
    ) -> None:
        self.policy = policy
        self.metric = metric
        self.epsilon = epsilon
        self.results = results
        self.query_points = query_tree.points
        self.query_ids = query_tree.old_from_new
        self.node_bounds = QueryNodeBounds(
            query_tree.node_parents, query_tree.node_children, policy
        )
        self.reference_points = reference_points
        self.reference_ids = reference_ids
        self.self_search = self_search
        self.stats = stats

    def _can_prune(self, query_node: TreeNode, reference_node: TreeNode) -> bool:
        bound = self.node_bounds.get(query_node.node_id)
        if bound is None:
            return False
        score = self.policy.best_distance(query_node.bound, reference_node.bound)
        self.stats.scores += 1
        return not self.policy.is_better(score, self.policy.relax(bound, self.epsilon))

    def traverse(self, query_root: TreeNode, reference_root: TreeNode) -> None:
        pending: List[Tuple[TreeNode, TreeNode]] = [(query_root, reference_root)]
        while pending:
            query_node, reference_node = pending.pop()
            if self._can_prune(query_node, reference_node):
                self.stats.prunes += 1
                continue
            if query_node.is_leaf and reference_node.is_leaf:
                self._base_case(query_node, reference_node)
                continue
            split_query = reference_node.is_leaf or (
                not query_node.is_leaf
                and query_node.bound.diameter >= reference_node.bound.diameter
            )
            if split_query:
                pending.extend(
                    (child, reference_node) for child in reversed(query_node.children)
                )
                continue
            children = self._reference_children(query_node, reference_node)
            pending.extend((query_node, child) for child in reversed(children))

    def _reference_children(
        self, query_node: TreeNode, reference_node: TreeNode
    ) -> List[TreeNode]:
        children = reference_node.children
        if reference_node.overlapping:
            children = _defeatist_children(query_node, reference_node)
        if len(children) < 2:
            return list(children)
        scores = [
            float(self.policy.sort_key(self.policy.best_distance(query_node.bound, child.bound)))
            for child in children
        ]
        order = np.argsort(np.asarray(scores), kind="stable")
        return [children[int(i)] for i in order]

    def _base_case(self, query_node: TreeNode, reference_node: TreeNode) -> None:
        rows = query_node.point_indices
        cols = reference_node.point_indices
        block = self.metric.pairwise(self.query_points[rows], self.reference_points[cols])
        exclude = None
        if self.self_search:
            exclude = self.query_ids[rows][:, None] == self.reference_ids[cols][None, :]
        self.results.update_block(rows, cols, block, exclude=exclude)
        self.node_bounds.refresh_leaf(query_node.node_id, self.results, rows)
        self.stats.base_cases += 1
        self.stats.distance_evaluations += int(block.size)


class _SingleTreeTraversal:
    """Branch-and-bound over reference nodes for one flat query point at a time."""

    def __init__(
        self,
        *,
        policy: SortPolicy,
        metric: Metric,
        epsilon: float,
        results: NeighborResults,
        reference_points: np.ndarray,
        query_ids: np.ndarray,
        reference_ids: np.ndarray,
        self_search: bool,
        stats: TraversalStats,
    ) -> None:
        self.policy = policy
        self.metric = metric
        self.epsilon = epsilon
        self.results = results
        self.reference_points = reference_points
        self.query_ids = query_ids
        self.reference_ids = reference_ids
        self.self_search = self_search
        self.stats = stats

    def _can_prune(self, row: int, point: np.ndarray, node: TreeNode) -> bool:
        if not self.results.is_full(row):
            return False
        score = self.policy.best_point_distance(point, node.bound)
        self.stats.scores += 1
        bound = self.policy.relax(self.results.worst(row), self.epsilon)
        return not self.policy.is_better(score, bound)

    def traverse(self, row: int, point: np.ndarray, root: TreeNode) -> None:
        pending = [root]
        while pending:
            node = pending.pop()
            if self._can_prune(row, point, node):
                self.stats.prunes += 1
                continue
            if node.is_leaf:
                self._base_case(row, point, node)
                continue
            children = node.children
            if node.overlapping:
                side = 0 if point[node.split_dim] <= node.split_value else 1
                children = [children[side]]
            if len(children) > 1:
                scores = [
                    float(self.policy.sort_key(self.policy.best_point_distance(point, child.bound)))
                    for child in children
                ]
                order = np.argsort(np.asarray(scores), kind="stable")
                children = [children[int(i)] for i in order]
            pending.extend(reversed(children))

    def _base_case(self, row: int, point: np.ndarray, node: TreeNode) -> None:
        cols = node.point_indices
        block = self.metric.pairwise(point[None, :], self.reference_points[cols])
        exclude = None
        if self.self_search:
            exclude = (self.reference_ids[cols] == self.query_ids[row])[None, :]
        self.results.update_block(np.asarray([row]), cols, block, exclude=exclude)
        self.stats.base_cases += 1
        self.stats.distance_evaluations += int(block.size)


def _defeatist_children(query_node: TreeNode, reference_node: TreeNode) -> List[TreeNode]:
    """Children of an overlapping node on the query region's side of the hyperplane."""

    dim = reference_node.split_dim
    value = reference_node.split_value
    bound = query_node.bound
    if isinstance(bound, HRectBound):
        lo, hi = float(bound.lo[dim]), float(bound.hi[dim])
    else:
        lo = float(bound.center[dim]) - bound.radius
        hi = float(bound.center[dim]) + bound.radius
    left, right = reference_node.children
    if hi <= value:
        return [left]
    if lo > value:
        return [right]
    return [left, right]


class NeighborSearch:
    """Exact or approximate k-nearest (or furthest) neighbour search engine.

    The engine either stores a flat reference set (naive mode) or a spatial
    tree plus an ownership tag. Trees it builds itself are released exactly
    once, on re-train or :meth:`close`; trees handed in by the caller are
    borrowed and never released here.

    Neighbour identities returned by :meth:`search` are caller-order indices
    into the reference set, one row per query in caller order, best first.
    """

    engine_name = "tree"

    def __init__(
        self,
        tree_kind: str = "kd",
        *,
        sort_policy: str | SortPolicy = "nearest",
        naive: bool = False,
        single_mode: bool = False,
        epsilon: float = 0.0,
        metric: str | None = None,
        tree_params: Dict[str, Any] | None = None,
    ) -> None:
        if tree_kind not in registered_tree_kinds():
            raise InvalidArgumentError(
                f"Unknown tree kind '{tree_kind}'. Expected one of {registered_tree_kinds()}."
            )
        if epsilon < 0:
            raise InvalidArgumentError(f"epsilon must be non-negative, got {epsilon}.")
        self._tree_kind = tree_kind
        self._policy = get_sort_policy(sort_policy)
        self._naive = bool(naive)
        self._single_mode = bool(single_mode)
        self._epsilon = float(epsilon)
        self._metric = get_metric(metric)
        self._tree_params: Dict[str, Any] = dict(tree_params or {})
        self._reference: np.ndarray | None = None
        self._tree: SpatialTree | None = None
        self._ownership: Ownership | None = None
        self.last_stats = TraversalStats()

    @property
    def tree_kind(self) -> str:
        return self._tree_kind

    @property
    def sort_policy(self) -> SortPolicy:
        return self._policy

    @property
    def metric(self) -> Metric:
        return self._metric

    @property
    def epsilon(self) -> float:
        return self._epsilon

    @property
    def naive(self) -> bool:
        return self._naive

    @naive.setter
    def naive(self, value: bool) -> None:
        self._naive = bool(value)

    @property
    def single_mode(self) -> bool:
        return self._single_mode

    @single_mode.setter
    def single_mode(self, value: bool) -> None:
        self._single_mode = bool(value)

    @property
    def tree(self) -> SpatialTree | None:
        return self._tree

    @property
    def ownership(self) -> Ownership | None:
        return self._ownership

    @property
    def is_trained(self) -> bool:
        return self._reference is not None or self._tree is not None

    @property
    def num_reference(self) -> int:
        if self._reference is not None:
            return int(self._reference.shape[0])
        return self._require_tree().num_points

    @property
    def dimension(self) -> int:
        if self._reference is not None:
            return int(self._reference.shape[1])
        return self._require_tree().dimension

    @property
    def reference_set(self) -> np.ndarray:
        """The reference points in the order they were supplied to :meth:`train`."""

        if self._reference is not None:
            return self._reference
        tree = self._require_tree()
        points = unmap_rows(tree.points, tree.old_from_new)
        points.flags.writeable = False
        return points

    def _reference_tree_params(self) -> Dict[str, Any]:
        return dict(self._tree_params)

    def _query_tree_params(self) -> Dict[str, Any]:
        return dict(self._tree_params)

    def _build_reference_tree(self, points: np.ndarray) -> SpatialTree:
        return build_tree(self._tree_kind, points, **self._reference_tree_params())

    def _build_query_tree(self, points: np.ndarray) -> SpatialTree:
        return build_tree(self._tree_kind, points, **self._query_tree_params())

    def _self_query_tree(self) -> Tuple[SpatialTree, bool]:
        """Query tree for self-search and whether it is transient."""

        return self._require_tree(), False

    def _release_tree(self) -> None:
        if self._tree is not None and self._ownership is Ownership.OWNED:
            self._tree.release()
        self._tree = None
        self._ownership = None

    def _install(
        self,
        *,
        reference: np.ndarray | None,
        tree: SpatialTree | None,
        ownership: Ownership | None,
    ) -> None:
        self._release_tree()
        self._reference = reference
        self._tree = tree
        self._ownership = ownership

    def close(self) -> None:
        """Release an owned tree and forget the reference set."""

        self._install(reference=None, tree=None, ownership=None)

    def __enter__(self) -> "NeighborSearch":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def train(self, data: Any) -> None:
        """Index ``data``: a point array (ownership moves here) or a pre-built tree (borrowed)."""

        with log_operation(LOGGER, "train") as op_log:
            if isinstance(data, SpatialTree):
                if data.is_released:
                    raise InvalidArgumentError("Cannot train on a released tree.")
                if data.num_points == 0:
                    raise InvalidArgumentError("reference tree must contain at least one point.")
                self._naive = False
                self._install(reference=None, tree=data, ownership=Ownership.BORROWED)
                op_log.add_metadata(points=data.num_points, tree=data.kind, ownership="borrowed")
                return
            points = as_point_set(data, name="reference set")
            points.flags.writeable = False
            if self._naive:
                self._install(reference=points, tree=None, ownership=None)
                op_log.add_metadata(points=points.shape[0], tree="none")
                return
            tree = self._build_reference_tree(points)
            self._install(reference=None, tree=tree, ownership=Ownership.OWNED)
            op_log.add_metadata(points=points.shape[0], tree=tree.kind, ownership="owned")

    def _require_trained(self) -> None:
        if not self.is_trained:
            raise NotTrainedError("Search engine has not been trained; call train() first.")

    def _require_tree(self) -> SpatialTree:
        if self._tree is None:
            raise NotTrainedError("Search engine has not been trained; call train() first.")
        return self._tree

    def _ensure_tree(self) -> SpatialTree:
        # Naive mode may have been switched off after training on a flat set.
        if self._tree is None and self._reference is not None:
            tree = self._build_reference_tree(self._reference)
            self._install(reference=None, tree=tree, ownership=Ownership.OWNED)
        return self._require_tree()

    def _check_k(self, k: int, available: int) -> int:
        if isinstance(k, bool) or int(k) != k:
            raise InvalidArgumentError(f"k must be an integer, got {k!r}.")
        k = int(k)
        if k <= 0:
            raise InvalidArgumentError("k must be positive.")
        if k > available:
            raise InvalidArgumentError(
                f"k={k} exceeds the {available} reference points available to each query."
            )
        return k

    def _check_queries(self, query: Any) -> np.ndarray:
        queries = as_point_set(query, name="query set", allow_empty=True)
        if queries.shape[0] == 0:
            return np.empty((0, self.dimension), dtype=np.float64)
        if queries.shape[1] != self.dimension:
            raise InvalidArgumentError(
                f"Query dimensionality {queries.shape[1]} does not match "
                f"reference dimensionality {self.dimension}."
            )
        return queries

    def search(self, query: Any = None, *, k: int) -> SearchResult:
        """Return ``(neighbors, distances)`` of shape ``(Q, k)``.

        Without ``query`` the reference set is searched against itself and a
        point is never reported as its own neighbour.
        """

        self._require_trained()
        if query is None:
            return self._self_search(k)
        queries = self._check_queries(query)
        k = self._check_k(k, self.num_reference)
        if queries.shape[0] == 0:
            return np.empty((0, k), dtype=np.int64), np.empty((0, k), dtype=np.float64)
        with log_operation(LOGGER, "knn_search") as op_log:
            stats = TraversalStats()
            if self._naive:
                mode = "naive"
                result = self._naive_search(queries, k, query_ids=None)
            elif self._single_mode:
                mode = "single"
                result = self._single_tree_search(queries, k, query_ids=None, stats=stats)
            else:
                mode = "dual"
                query_tree = self._build_query_tree(queries)
                try:
                    result = self._dual_tree_search(query_tree, k, self_search=False, stats=stats)
                finally:
                    query_tree.release()
            self._record(op_log, stats, mode=mode, queries=queries.shape[0], k=k, self_search=False)
        return result

    def search_tree(self, query_tree: SpatialTree, *, k: int) -> SearchResult:
        """Dual-tree search with a caller-built query tree; rows follow the tree's caller order."""

        self._require_trained()
        if query_tree.dimension != self.dimension:
            raise InvalidArgumentError(
                f"Query dimensionality {query_tree.dimension} does not match "
                f"reference dimensionality {self.dimension}."
            )
        k = self._check_k(k, self.num_reference)
        with log_operation(LOGGER, "knn_search") as op_log:
            stats = TraversalStats()
            result = self._dual_tree_search(query_tree, k, self_search=False, stats=stats)
            self._record(
                op_log, stats, mode="dual", queries=query_tree.num_points, k=k, self_search=False
            )
        return result

    def _self_search(self, k: int) -> SearchResult:
        k = self._check_k(k, self.num_reference - 1)
        with log_operation(LOGGER, "knn_search") as op_log:
            stats = TraversalStats()
            ids = np.arange(self.num_reference, dtype=np.int64)
            if self._naive:
                mode = "naive"
                result = self._naive_search(self.reference_set, k, query_ids=ids)
            elif self._single_mode:
                mode = "single"
                result = self._single_tree_search(self.reference_set, k, query_ids=ids, stats=stats)
            else:
                mode = "dual"
                self._ensure_tree()
                query_tree, transient = self._self_query_tree()
                try:
                    result = self._dual_tree_search(query_tree, k, self_search=True, stats=stats)
                finally:
                    if transient:
                        query_tree.release()
            self._record(
                op_log, stats, mode=mode, queries=self.num_reference, k=k, self_search=True
            )
        return result

    def _record(self, op_log: Any, stats: TraversalStats, **metadata: Any) -> None:
        self.last_stats = stats
        op_log.add_metadata(**metadata, **asdict(stats))

    def _naive_search(
        self, queries: np.ndarray, k: int, *, query_ids: np.ndarray | None
    ) -> SearchResult:
        reference = self.reference_set
        reference_ids = np.arange(reference.shape[0], dtype=np.int64)
        num_queries = queries.shape[0]
        neighbors = np.empty((num_queries, k), dtype=np.int64)
        distances = np.empty((num_queries, k), dtype=np.float64)
        block_size = dx_config.runtime_config().naive_block_size
        for start in range(0, num_queries, block_size):
            stop = min(start + block_size, num_queries)
            block = self._metric.pairwise(queries[start:stop], reference)
            keys = np.array(self._policy.sort_key(block), dtype=np.float64, copy=True)
            if query_ids is not None:
                keys[query_ids[start:stop][:, None] == reference_ids[None, :]] = np.inf
            order = np.argsort(keys, axis=1, kind="stable")[:, :k]
            neighbors[start:stop] = order
            distances[start:stop] = np.take_along_axis(block, order, axis=1)
        return neighbors, distances

    def _single_tree_search(
        self,
        queries: np.ndarray,
        k: int,
        *,
        query_ids: np.ndarray | None,
        stats: TraversalStats,
    ) -> SearchResult:
        tree = self._ensure_tree()
        results = NeighborResults(queries.shape[0], k, self._policy)
        ids = query_ids if query_ids is not None else np.full(queries.shape[0], -1, np.int64)
        traversal = _SingleTreeTraversal(
            policy=self._policy,
            metric=self._metric,
            epsilon=self._epsilon,
            results=results,
            reference_points=tree.points,
            query_ids=ids,
            reference_ids=tree.old_from_new,
            self_search=query_ids is not None,
            stats=stats,
        )
        root = tree.root
        for row in range(queries.shape[0]):
            traversal.traverse(row, queries[row], root)
        self._fill_incomplete(
            results, queries, ids, tree, self_search=query_ids is not None, stats=stats
        )
        neighbors, distances = results.as_arrays()
        return tree.old_from_new[neighbors], distances

    def _dual_tree_search(
        self,
        query_tree: SpatialTree,
        k: int,
        *,
        self_search: bool,
        stats: TraversalStats,
    ) -> SearchResult:
        tree = self._ensure_tree()
        results = NeighborResults(query_tree.num_points, k, self._policy)
        traversal = _DualTreeTraversal(
            policy=self._policy,
            metric=self._metric,
            epsilon=self._epsilon,
            results=results,
            query_tree=query_tree,
            reference_points=tree.points,
            reference_ids=tree.old_from_new,
            self_search=self_search,
            stats=stats,
        )
        traversal.traverse(query_tree.root, tree.root)
        self._fill_incomplete(
            results,
            query_tree.points,
            query_tree.old_from_new,
            tree,
            self_search=self_search,
            stats=stats,
        )
        neighbors, distances = results.as_arrays()
        neighbors = tree.old_from_new[neighbors]
        # Rows are in query-tree order; scatter them back to caller order.
        return (
            unmap_rows(neighbors, query_tree.old_from_new),
            unmap_rows(distances, query_tree.old_from_new),
        )

    def _fill_incomplete(
        self,
        results: NeighborResults,
        queries: np.ndarray,
        query_ids: np.ndarray,
        tree: SpatialTree,
        *,
        self_search: bool,
        stats: TraversalStats,
    ) -> None:
        """Complete rows that defeatist descent left short of ``k`` entries."""

        short = np.flatnonzero(results.counts < results.k)
        if short.size == 0:
            return
        LOGGER.debug("Filling %d incomplete result rows exhaustively.", short.size)
        all_cols = np.arange(tree.num_points, dtype=np.int64)
        for row in short:
            block = self._metric.pairwise(queries[row][None, :], tree.points)
            exclude = None
            if self_search:
                exclude = (tree.old_from_new == query_ids[row])[None, :]
            results.update_block(np.asarray([row]), all_cols, block, exclude=exclude)
            stats.distance_evaluations += int(block.size)
        stats.fallback_queries += int(short.size)

    def _extra_state(self) -> Dict[str, Any]:
        return {}

    def to_state(self) -> Dict[str, Any]:
        """Serialisable snapshot of the engine, including its reference set."""

        state: Dict[str, Any] = {
            "engine": self.engine_name,
            "tree_kind": self._tree_kind,
            "tree_params": dict(self._tree_params),
            "sort_policy": self._policy.name,
            "naive": self._naive,
            "single_mode": self._single_mode,
            "epsilon": self._epsilon,
            "metric": self._metric.name,
            "reference": None,
            "tree": None,
        }
        state.update(self._extra_state())
        if not self.is_trained:
            return state
        state["reference"] = self.reference_set.tolist()
        if self._tree is not None:
            state["tree"] = {
                "kind": self._tree.kind,
                "params": dict(self._tree.params),
                "old_from_new": self._tree.old_from_new.tolist(),
            }
        return state

    @classmethod
    def _from_state_args(cls, state: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "tree_kind": state["tree_kind"],
            "tree_params": state.get("tree_params") or {},
        }

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "NeighborSearch":
        engine_name = state.get("engine")
        if engine_name != cls.engine_name:
            raise InvalidArgumentError(
                f"State describes a '{engine_name}' engine, expected '{cls.engine_name}'."
            )
        engine = cls(
            sort_policy=state["sort_policy"],
            naive=bool(state["naive"]),
            single_mode=bool(state["single_mode"]),
            epsilon=float(state["epsilon"]),
            metric=state.get("metric"),
            **cls._from_state_args(state),
        )
        engine._restore_reference(state)
        return engine

    def _restore_reference(self, state: Dict[str, Any]) -> None:
        raw = state.get("reference")
        if raw is None:
            return
        points = as_point_set(raw, name="stored reference set")
        points.flags.writeable = False
        tree_state = state.get("tree")
        if tree_state is None:
            self._install(reference=points, tree=None, ownership=None)
            return
        tree = build_tree(tree_state["kind"], points, **tree_state.get("params", {}))
        expected = np.asarray(tree_state["old_from_new"], dtype=np.int64)
        if not np.array_equal(tree.old_from_new, expected):
            tree.release()
            raise InvalidArgumentError(
                "Rebuilt tree permutation does not match the stored permutation."
            )
        self._install(reference=None, tree=tree, ownership=Ownership.OWNED)


__all__ = ["NeighborSearch", "SearchResult", "TraversalStats"]
