import numpy as np
import pytest

from dualtreex import config as dx_config
from dualtreex.errors import InvalidArgumentError
from dualtreex.queries import LeafNeighborSearch
from dualtreex.trees import build_tree
from tests.utils.datasets import brute_force_neighbors, gaussian_dataset, geometric_chain


def _dataset(seed: int, points: int = 250, queries: int = 35):
    return gaussian_dataset(
        np.random.default_rng(seed), tree_points=points, queries=queries, dimension=4
    )


@pytest.mark.parametrize("kind", ("kd", "ball"))
@pytest.mark.parametrize("leaf_size", (1, 7, 500))
def test_leaf_search_unmaps_results_to_caller_order(kind: str, leaf_size: int):
    reference, queries = _dataset(21)
    engine = LeafNeighborSearch(kind, leaf_size=leaf_size)
    engine.train(reference)

    indices, distances = engine.search(queries, k=6)

    expected_idx, expected_dist = brute_force_neighbors(reference, queries, 6)
    np.testing.assert_array_equal(indices, expected_idx)
    np.testing.assert_allclose(distances, expected_dist)


def test_query_tree_uses_engine_leaf_size(monkeypatch: pytest.MonkeyPatch):
    reference, queries = _dataset(22)
    engine = LeafNeighborSearch("kd", leaf_size=3)
    engine.train(reference)
    built = []
    original = engine._build_query_tree

    def _spy(points):
        tree = original(points)
        built.append(tree.params)
        return tree

    monkeypatch.setattr(engine, "_build_query_tree", _spy)
    engine.search(queries, k=2)

    assert built == [{"leaf_size": 3}]


def test_single_and_naive_modes_skip_the_query_tree(monkeypatch: pytest.MonkeyPatch):
    reference, queries = _dataset(23)
    engine = LeafNeighborSearch("ball", leaf_size=5, single_mode=True)
    engine.train(reference)

    def _fail(points):
        raise AssertionError("query tree should not be built")

    monkeypatch.setattr(engine, "_build_query_tree", _fail)
    single, _ = engine.search(queries, k=3)
    engine.naive = True
    naive, _ = engine.search(queries, k=3)

    np.testing.assert_array_equal(single, naive)


def test_prebuilt_query_tree_results_follow_caller_order():
    reference, queries = _dataset(24)
    engine = LeafNeighborSearch("kd", leaf_size=4)
    engine.train(reference)
    query_tree = build_tree("kd", queries, leaf_size=2)

    indices, _ = engine.search_tree(query_tree, k=2)

    expected_idx, _ = brute_force_neighbors(reference, queries, 2)
    np.testing.assert_array_equal(indices, expected_idx)
    assert not query_tree.is_released


def test_leaf_size_defaults_to_runtime_config(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DUALTREEX_LEAF_SIZE", "9")
    dx_config.reset_runtime_config_cache()
    try:
        engine = LeafNeighborSearch("kd")
    finally:
        monkeypatch.delenv("DUALTREEX_LEAF_SIZE")
        dx_config.reset_runtime_config_cache()

    assert engine.leaf_size == 9


def test_leaf_search_rejects_bad_parameters():
    with pytest.raises(InvalidArgumentError):
        LeafNeighborSearch("kd", leaf_size=0)
    with pytest.raises(InvalidArgumentError):
        LeafNeighborSearch("kd", leaf_size=2.5)
    with pytest.raises(InvalidArgumentError):
        LeafNeighborSearch("cover", leaf_size=4)


def test_leaf_state_round_trip_keeps_leaf_size():
    reference, queries = _dataset(25)
    engine = LeafNeighborSearch("ball", leaf_size=6)
    engine.train(reference)

    restored = LeafNeighborSearch.from_state(engine.to_state())

    assert restored.leaf_size == 6
    np.testing.assert_array_equal(restored.tree.old_from_new, engine.tree.old_from_new)
    np.testing.assert_array_equal(
        restored.search(queries, k=4)[0], engine.search(queries, k=4)[0]
    )


@pytest.mark.parametrize("mode", ("dual", "single"))
def test_search_on_geometric_chain(mode: str):
    reference = geometric_chain(1100)
    queries = np.array([[0.75], [0.3], [1e-9], [0.0]])
    engine = LeafNeighborSearch("kd", leaf_size=1, single_mode=mode == "single")
    engine.train(reference)

    _, distances = engine.search(queries, k=3)

    _, expected = brute_force_neighbors(reference, queries, 3)
    np.testing.assert_allclose(distances, expected)
