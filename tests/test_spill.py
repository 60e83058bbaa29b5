import numpy as np
import pytest

from dualtreex.errors import InvalidArgumentError
from dualtreex.queries import LeafNeighborSearch, SpillNeighborSearch
from dualtreex.trees import build_spill_tree
from tests.utils.datasets import brute_force_neighbors, gaussian_dataset


def _dataset(seed: int, points: int = 400, queries: int = 50):
    return gaussian_dataset(
        np.random.default_rng(seed), tree_points=points, queries=queries, dimension=2
    )


@pytest.mark.parametrize("single_mode", (False, True))
def test_zero_tau_matches_leaf_variant(single_mode: bool):
    reference, queries = _dataset(31)
    spill = SpillNeighborSearch(tau=0.0, leaf_size=8, single_mode=single_mode)
    leaf = LeafNeighborSearch("kd", leaf_size=8, single_mode=single_mode)
    spill.train(reference)
    leaf.train(reference.copy())

    spill_idx, spill_dist = spill.search(queries, k=5)
    leaf_idx, leaf_dist = leaf.search(queries, k=5)

    np.testing.assert_array_equal(spill_idx, leaf_idx)
    np.testing.assert_allclose(spill_dist, leaf_dist)


@pytest.mark.parametrize("single_mode", (False, True))
def test_overlapping_search_returns_valid_neighbour_lists(single_mode: bool):
    reference, queries = _dataset(32)
    engine = SpillNeighborSearch(tau=0.2, leaf_size=10, single_mode=single_mode)
    engine.train(reference)

    indices, distances = engine.search(queries, k=4)

    assert engine.overlap_fraction() > 0.0
    assert indices.shape == (queries.shape[0], 4)
    assert np.all((indices >= 0) & (indices < reference.shape[0]))
    for row in indices:
        assert len(set(row.tolist())) == 4
    recomputed = np.linalg.norm(reference[indices] - queries[:, None, :], axis=-1)
    np.testing.assert_allclose(distances, recomputed)
    assert np.all(np.diff(distances, axis=1) >= 0.0)
    _, exact = brute_force_neighbors(reference, queries, 4)
    assert np.all(distances[:, -1] >= exact[:, -1] - 1e-12)


def test_overlapping_self_search_excludes_each_point():
    reference, _ = _dataset(33, points=300)
    engine = SpillNeighborSearch(tau=0.3, leaf_size=12)
    engine.train(reference)

    indices, _ = engine.search(k=3)

    rows = np.arange(reference.shape[0])[:, None]
    assert not np.any(indices == rows)
    assert np.all(indices >= 0)


def test_query_trees_are_built_without_overlap():
    reference, queries = _dataset(34)
    engine = SpillNeighborSearch(tau=0.5, leaf_size=10)
    engine.train(reference)

    assert engine._query_tree_params()["tau"] == 0.0
    assert engine.tree.params["tau"] == 0.5


def test_overlapping_query_tree_is_rebuilt_before_search():
    reference, queries = _dataset(35)
    engine = SpillNeighborSearch(tau=0.0, leaf_size=10)
    engine.train(reference)
    overlapping = build_spill_tree(queries, tau=0.4, leaf_size=5)

    indices, _ = engine.search_tree(overlapping, k=3)

    expected_idx, _ = brute_force_neighbors(reference, queries, 3)
    np.testing.assert_array_equal(indices, expected_idx)
    assert not overlapping.is_released


def test_negative_tau_is_rejected():
    with pytest.raises(InvalidArgumentError):
        SpillNeighborSearch(tau=-1.0)


def test_spill_state_round_trip_keeps_tau():
    reference, queries = _dataset(36)
    engine = SpillNeighborSearch(tau=0.25, leaf_size=6)
    engine.train(reference)

    restored = SpillNeighborSearch.from_state(engine.to_state())

    assert restored.tau == 0.25
    assert restored.leaf_size == 6
    np.testing.assert_array_equal(
        restored.search(queries, k=2)[0], engine.search(queries, k=2)[0]
    )
