from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Type

import numpy as np

from dualtreex.api.rotation import apply_rotation, random_basis
from dualtreex.core.points import as_point_set
from dualtreex.core.sort import SortPolicy, get_sort_policy
from dualtreex.diagnostics import log_operation
from dualtreex.errors import ConstructionError, InvalidArgumentError, NotInitializedError
from dualtreex.logging import get_logger
from dualtreex.queries import LeafNeighborSearch, NeighborSearch, SpillNeighborSearch
from dualtreex.queries.knn import SearchResult

LOGGER = get_logger("api.model")

SCHEMA_ID = "dualtreex.ns_model.v1"


class TreeType(enum.Enum):
    """Back ends a model can dispatch to; the value is the persisted tag."""

    KD = "kd"
    COVER = "cover"
    R = "r"
    R_STAR = "r-star"
    BALL = "ball"
    X = "x"
    SPILL = "spill"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value: "TreeType | str") -> "TreeType":
        if isinstance(value, cls):
            return value
        key = str(value).strip()
        for member in cls:
            if key.lower() in {member.value, member.name.lower(), member.display_name.lower()}:
                return member
        raise InvalidArgumentError(
            f"Unknown tree type '{value}'. Expected one of {[m.value for m in cls]}."
        )


_DISPLAY_NAMES: Dict[TreeType, str] = {
    TreeType.KD: "kd-tree",
    TreeType.COVER: "cover tree",
    TreeType.R: "R tree",
    TreeType.R_STAR: "R* tree",
    TreeType.BALL: "ball tree",
    TreeType.X: "X tree",
    TreeType.SPILL: "spill tree",
}


@dataclass(frozen=True)
class _EngineSpec:
    engine_cls: Type[NeighborSearch]
    factory: Callable[..., NeighborSearch]


def _leaf_engine(kind: str) -> Callable[..., NeighborSearch]:
    def _factory(*, leaf_size: int | None, tau: float, **kwargs: Any) -> NeighborSearch:
        return LeafNeighborSearch(kind, leaf_size=leaf_size, **kwargs)

    return _factory


def _rectangle_engine(kind: str) -> Callable[..., NeighborSearch]:
    def _factory(*, leaf_size: int | None, tau: float, **kwargs: Any) -> NeighborSearch:
        params = {} if leaf_size is None else {"max_leaf_size": int(leaf_size)}
        return NeighborSearch(kind, tree_params=params, **kwargs)

    return _factory


def _cover_engine(*, leaf_size: int | None, tau: float, **kwargs: Any) -> NeighborSearch:
    return NeighborSearch("cover", **kwargs)


def _spill_engine(*, leaf_size: int | None, tau: float, **kwargs: Any) -> NeighborSearch:
    return SpillNeighborSearch(tau=tau, leaf_size=leaf_size, **kwargs)


_ENGINE_SPECS: Dict[TreeType, _EngineSpec] = {
    TreeType.KD: _EngineSpec(LeafNeighborSearch, _leaf_engine("kd")),
    TreeType.BALL: _EngineSpec(LeafNeighborSearch, _leaf_engine("ball")),
    TreeType.COVER: _EngineSpec(NeighborSearch, _cover_engine),
    TreeType.R: _EngineSpec(NeighborSearch, _rectangle_engine("r")),
    TreeType.R_STAR: _EngineSpec(NeighborSearch, _rectangle_engine("r-star")),
    TreeType.X: _EngineSpec(NeighborSearch, _rectangle_engine("x")),
    TreeType.SPILL: _EngineSpec(SpillNeighborSearch, _spill_engine),
}


def _engine_spec(tree_type: TreeType) -> _EngineSpec:
    spec = _ENGINE_SPECS.get(tree_type)
    if spec is None:
        raise ConstructionError(f"No search engine is available for {tree_type.display_name}.")
    return spec


class NSModel:
    """Neighbour-search model that hides the back-end choice.

    The model owns at most one trained engine. :meth:`build_model` (and
    restoring a persisted payload) closes the previous engine before a new
    one is installed. With ``random_basis=True`` the reference set is
    rotated by a random orthonormal matrix before training and every
    explicit query set is rotated the same way; distances are unchanged.
    """

    fixed_sort_policy: str | None = None

    def __init__(
        self,
        tree_type: TreeType | str = TreeType.KD,
        *,
        random_basis: bool = False,
        sort_policy: str | SortPolicy | None = None,
        epsilon: float = 0.0,
        tau: float = 0.0,
        seed: int | None = None,
    ) -> None:
        if sort_policy is None:
            sort_policy = self.fixed_sort_policy or "nearest"
        policy = get_sort_policy(sort_policy)
        if self.fixed_sort_policy is not None and policy.name != self.fixed_sort_policy:
            raise InvalidArgumentError(
                f"{type(self).__name__} only supports '{self.fixed_sort_policy}' search."
            )
        if epsilon < 0:
            raise InvalidArgumentError(f"epsilon must be non-negative, got {epsilon}.")
        if tau < 0:
            raise InvalidArgumentError(f"tau must be non-negative, got {tau}.")
        self.tree_type = TreeType.parse(tree_type)
        self.random_basis = bool(random_basis)
        self.sort_policy = policy
        self.epsilon = float(epsilon)
        self.tau = float(tau)
        self._rng = np.random.default_rng(seed)
        self._rotation: np.ndarray | None = None
        self._engine: NeighborSearch | None = None

    def _require_engine(self) -> NeighborSearch:
        if self._engine is None:
            raise NotInitializedError("Model has no search engine; call build_model() first.")
        return self._engine

    def _release_engine(self) -> None:
        if self._engine is not None:
            self._engine.close()
        self._engine = None
        self._rotation = None

    def close(self) -> None:
        self._release_engine()

    def build_model(
        self,
        reference: Any,
        leaf_size: int | None = None,
        naive: bool = False,
        single_mode: bool = False,
    ) -> None:
        """Train a fresh engine of the model's tree type on ``reference``."""

        self._release_engine()
        with log_operation(LOGGER, "build_model") as op_log:
            points = as_point_set(reference, name="reference set")
            rotation = None
            if self.random_basis:
                rotation = random_basis(points.shape[1], self._rng)
                points = apply_rotation(points, rotation)
            spec = _engine_spec(self.tree_type)
            engine = spec.factory(
                leaf_size=leaf_size,
                tau=self.tau,
                sort_policy=self.sort_policy,
                naive=naive,
                single_mode=single_mode,
                epsilon=self.epsilon,
            )
            engine.train(points)
            self._engine = engine
            self._rotation = rotation
            op_log.add_metadata(
                tree=self.tree_type.value,
                points=points.shape[0],
                dimension=points.shape[1],
                rotated=rotation is not None,
                naive=bool(naive),
            )

    def search(self, query: Any = None, *, k: int) -> SearchResult:
        """Search ``query`` (or the reference set itself) for ``k`` neighbours."""

        engine = self._require_engine()
        if query is None:
            return engine.search(k=k)
        queries = as_point_set(query, name="query set", allow_empty=True)
        if queries.shape[0] > 0:
            queries = apply_rotation(queries, self._rotation)
        return engine.search(queries, k=k)

    @property
    def engine(self) -> NeighborSearch:
        return self._require_engine()

    @property
    def dataset(self) -> np.ndarray:
        """Reference set as stored by the engine (rotated when a basis is in use)."""

        return self._require_engine().reference_set

    @property
    def naive(self) -> bool:
        return self._require_engine().naive

    @naive.setter
    def naive(self, value: bool) -> None:
        self._require_engine().naive = value

    @property
    def single_mode(self) -> bool:
        return self._require_engine().single_mode

    @single_mode.setter
    def single_mode(self, value: bool) -> None:
        self._require_engine().single_mode = value

    @property
    def tree_name(self) -> str:
        self._require_engine()
        return self.tree_type.display_name

    @property
    def rotation(self) -> np.ndarray | None:
        return None if self._rotation is None else self._rotation.copy()

    @property
    def is_built(self) -> bool:
        return self._engine is not None

    def __repr__(self) -> str:
        state = "built" if self._engine is not None else "empty"
        return (
            f"{type(self).__name__}(tree_type={self.tree_type.value!r}, "
            f"sort_policy={self.sort_policy.name!r}, random_basis={self.random_basis}, {state})"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_id": SCHEMA_ID,
            "tree_type": self.tree_type.value,
            "sort_policy": self.sort_policy.name,
            "epsilon": self.epsilon,
            "tau": self.tau,
            "random_basis": self.random_basis,
            "rotation": None if self._rotation is None else self._rotation.tolist(),
            "engine": None if self._engine is None else self._engine.to_state(),
        }

    def restore(self, payload: Dict[str, Any]) -> None:
        """Replace this model's state with a payload produced by :meth:`to_dict`."""

        schema_id = payload.get("schema_id")
        if schema_id != SCHEMA_ID:
            raise InvalidArgumentError(f"Unsupported model schema '{schema_id}'.")
        # The tag decides which engine variant reads the engine state.
        tree_type = TreeType.parse(payload["tree_type"])
        policy = get_sort_policy(payload["sort_policy"])
        if self.fixed_sort_policy is not None and policy.name != self.fixed_sort_policy:
            raise InvalidArgumentError(
                f"Payload holds a '{policy.name}' model, expected '{self.fixed_sort_policy}'."
            )
        rotation = payload.get("rotation")
        rotation_matrix = None
        if rotation is not None:
            rotation_matrix = np.asarray(rotation, dtype=np.float64)
            if rotation_matrix.ndim != 2 or rotation_matrix.shape[0] != rotation_matrix.shape[1]:
                raise InvalidArgumentError("Stored rotation must be a square matrix.")
        self._release_engine()
        with log_operation(LOGGER, "restore_model") as op_log:
            engine_state = payload.get("engine")
            engine = None
            if engine_state is not None:
                engine = _engine_spec(tree_type).engine_cls.from_state(engine_state)
            self.tree_type = tree_type
            self.sort_policy = policy
            self.epsilon = float(payload.get("epsilon", 0.0))
            self.tau = float(payload.get("tau", 0.0))
            self.random_basis = bool(payload.get("random_basis", False))
            self._engine = engine
            self._rotation = rotation_matrix
            op_log.add_metadata(tree=tree_type.value, trained=engine is not None)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "NSModel":
        model = cls(payload.get("tree_type", TreeType.KD.value))
        model.restore(payload)
        return model

    def dump(self, path: str | Path) -> None:
        target = Path(path).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        payload = self.to_dict()
        target.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        LOGGER.debug("Wrote %s model to %s", self.tree_type.value, target)

    @classmethod
    def load(cls, path: str | Path) -> "NSModel":
        target = Path(path).expanduser()
        payload = json.loads(target.read_text(encoding="utf-8"))
        return cls.from_payload(payload)


class KNNModel(NSModel):
    """k-nearest-neighbour model."""

    fixed_sort_policy = "nearest"


class KFNModel(NSModel):
    """k-furthest-neighbour model."""

    fixed_sort_policy = "furthest"


__all__ = ["KFNModel", "KNNModel", "NSModel", "SCHEMA_ID", "TreeType"]
