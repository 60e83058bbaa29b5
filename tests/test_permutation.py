import numpy as np
import pytest

from dualtreex.core.permutation import (
    identity_permutation,
    invert_permutation,
    map_rows,
    unmap_rows,
    validate_permutation,
)
from dualtreex.core.results import NeighborResults, QueryNodeBounds
from dualtreex.core.sort import FURTHEST, NEAREST
from dualtreex.errors import InvalidArgumentError
from dualtreex.trees import build_tree


def test_unmap_inverts_map():
    rng = np.random.default_rng(3)
    values = rng.normal(size=(7, 3))
    perm = rng.permutation(7)

    tree_order = map_rows(values, perm)

    np.testing.assert_array_equal(unmap_rows(tree_order, perm), values)
    np.testing.assert_array_equal(tree_order[invert_permutation(perm)], values)


def test_validate_permutation_rejects_non_bijections():
    assert validate_permutation(identity_permutation(4), 4).tolist() == [0, 1, 2, 3]
    with pytest.raises(InvalidArgumentError):
        validate_permutation(np.array([0, 0, 1]))
    with pytest.raises(InvalidArgumentError):
        validate_permutation(np.array([0, 3, 1]))
    with pytest.raises(InvalidArgumentError):
        validate_permutation(np.array([0, 1]), 3)


def test_results_keep_best_k_in_order():
    results = NeighborResults(1, 2, NEAREST)

    for index, distance in [(0, 3.0), (1, 1.0), (2, 2.0), (3, 5.0)]:
        results.insert(0, index, distance)

    indices, distances = results.as_arrays()
    assert indices.tolist() == [[1, 2]]
    assert distances.tolist() == [[1.0, 2.0]]


def test_results_ties_keep_encounter_order():
    results = NeighborResults(1, 2, NEAREST)

    results.insert(0, 4, 1.0)
    results.insert(0, 2, 1.0)
    results.insert(0, 7, 1.0)

    assert results.indices.tolist() == [[4, 2]]


def test_results_ignore_duplicate_identities():
    results = NeighborResults(1, 3, FURTHEST)

    results.insert(0, 5, 2.0)
    assert not results.insert(0, 5, 2.0)
    results.insert(0, 1, 4.0)

    assert results.indices.tolist() == [[1, 5, -1]]
    assert int(results.counts[0]) == 2


def test_node_bound_waits_for_full_rows():
    results = NeighborResults(2, 1, NEAREST)
    rows = np.array([0, 1])

    assert results.node_bound(rows) is None
    results.insert(0, 0, 1.5)
    assert results.node_bound(rows) is None
    results.insert(1, 0, 0.5)
    assert results.node_bound(rows) == pytest.approx(1.5)


def test_update_block_honours_exclusion_mask():
    results = NeighborResults(1, 1, NEAREST)
    block = np.array([[0.0, 2.0]])

    results.update_block(np.array([0]), np.array([9, 3]), block, exclude=np.array([[True, False]]))

    assert results.indices.tolist() == [[3]]


def test_update_block_merges_like_a_full_sort():
    block = np.random.default_rng(4).uniform(size=(3, 40))
    results = NeighborResults(3, 5, NEAREST)

    for start in range(0, 40, 7):
        stop = min(start + 7, 40)
        results.update_block(np.arange(3), np.arange(start, stop), block[:, start:stop])

    expected = np.argsort(block, axis=1, kind="stable")[:, :5]
    np.testing.assert_array_equal(results.indices, expected)
    np.testing.assert_allclose(results.distances, np.take_along_axis(block, expected, axis=1))
    assert results.counts.tolist() == [5, 5, 5]


def test_update_block_counts_new_entries_and_skips_known_identities():
    results = NeighborResults(2, 2, FURTHEST)

    first = results.update_block(np.array([1]), np.array([3, 4]), np.array([[1.0, 2.0]]))
    again = results.update_block(np.array([1]), np.array([4, 5]), np.array([[2.0, 3.0]]))

    assert first == 2
    assert again == 1
    assert results.indices.tolist() == [[-1, -1], [5, 4]]
    assert results.counts.tolist() == [0, 2]


def test_query_node_bounds_propagate_from_leaves_to_root():
    tree = build_tree("kd", np.arange(8, dtype=np.float64)[:, None], leaf_size=2)
    results = NeighborResults(tree.num_points, 1, NEAREST)
    bounds = QueryNodeBounds(tree.node_parents, tree.node_children, NEAREST)
    leaves = tree.leaves()
    root_id = tree.root.node_id

    for step, leaf in enumerate(leaves, start=1):
        rows = leaf.point_indices
        results.update_block(rows, np.array([0]), np.full((leaf.count, 1), float(step)))
        bounds.refresh_leaf(leaf.node_id, results, rows)
        assert bounds.get(leaf.node_id) == pytest.approx(step)
        if step < len(leaves):
            assert bounds.get(root_id) is None

    assert bounds.get(root_id) == pytest.approx(len(leaves))

    last = leaves[-1]
    results.update_block(last.point_indices, np.array([1]), np.full((last.count, 1), 0.5))
    bounds.refresh_leaf(last.node_id, results, last.point_indices)
    assert bounds.get(last.node_id) == pytest.approx(0.5)
    assert bounds.get(root_id) == pytest.approx(len(leaves) - 1)
