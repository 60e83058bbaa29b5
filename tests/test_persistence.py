import json

import numpy as np
import pytest

from dualtreex.api import SCHEMA_ID, KFNModel, KNNModel, NSModel, TreeType
from dualtreex.core.tree import Ownership
from dualtreex.errors import InvalidArgumentError
from tests.utils.datasets import gaussian_dataset


def _dataset(seed: int = 0):
    return gaussian_dataset(
        np.random.default_rng(seed), tree_points=150, queries=20, dimension=3
    )


def _roundtrip(model: NSModel) -> NSModel:
    payload = json.loads(json.dumps(model.to_dict(), sort_keys=True))
    return type(model).from_payload(payload)


@pytest.mark.parametrize("tree_type", list(TreeType))
@pytest.mark.parametrize("random_basis", (False, True))
def test_round_trip_preserves_search_results(tree_type: TreeType, random_basis: bool):
    reference, queries = _dataset(51)
    model = KNNModel(tree_type, random_basis=random_basis, seed=5, tau=0.1)
    model.build_model(reference, leaf_size=6)

    restored = _roundtrip(model)

    assert restored.tree_type is tree_type
    assert restored.tree_name == model.tree_name
    assert type(restored.engine) is type(model.engine)
    assert restored.engine.ownership is Ownership.OWNED
    np.testing.assert_array_equal(restored.dataset, model.dataset)
    for query in (queries, None):
        before = model.search(query, k=3)
        after = restored.search(query, k=3)
        np.testing.assert_array_equal(after[0], before[0])
        np.testing.assert_array_equal(after[1], before[1])


@pytest.mark.parametrize("naive, single_mode", [(True, False), (False, True)])
def test_round_trip_preserves_mode_flags(naive: bool, single_mode: bool):
    reference, queries = _dataset(52)
    model = KFNModel("ball", epsilon=0.1)
    model.build_model(reference, naive=naive, single_mode=single_mode)

    restored = _roundtrip(model)

    assert restored.naive is naive
    assert restored.single_mode is single_mode
    assert restored.sort_policy.name == "furthest"
    assert restored.engine.epsilon == pytest.approx(0.1)
    np.testing.assert_array_equal(restored.search(queries, k=2)[0], model.search(queries, k=2)[0])


def test_dump_and_load(tmp_path):
    reference, queries = _dataset(53)
    model = KNNModel("spill", tau=0.2, random_basis=True, seed=9)
    model.build_model(reference, leaf_size=10)
    target = tmp_path / "models" / "spill.json"

    model.dump(target)
    loaded = KNNModel.load(target)

    payload = json.loads(target.read_text(encoding="utf-8"))
    assert payload["schema_id"] == SCHEMA_ID
    assert payload["tree_type"] == "spill"
    assert loaded.tau == pytest.approx(0.2)
    np.testing.assert_allclose(loaded.rotation, model.rotation)
    np.testing.assert_array_equal(loaded.search(queries, k=2)[0], model.search(queries, k=2)[0])


def test_restore_releases_previous_engine():
    reference, _ = _dataset(54)
    source = NSModel("cover")
    source.build_model(reference)
    target = NSModel("kd")
    target.build_model(reference)
    old_tree = target.engine.tree

    target.restore(source.to_dict())

    assert old_tree is not None and old_tree.is_released
    assert target.tree_type is TreeType.COVER
    assert target.tree_name == "cover tree"


def test_unbuilt_model_round_trips_empty():
    model = NSModel("r", epsilon=0.3)

    restored = NSModel.from_payload(model.to_dict())

    assert not restored.is_built
    assert restored.tree_type is TreeType.R
    assert restored.epsilon == pytest.approx(0.3)


def test_restore_rejects_bad_payloads():
    reference, _ = _dataset(55)
    model = NSModel("kd")
    model.build_model(reference)
    payload = model.to_dict()

    with pytest.raises(InvalidArgumentError):
        NSModel.from_payload({**payload, "schema_id": "dualtreex.ns_model.v0"})
    with pytest.raises(InvalidArgumentError):
        NSModel.from_payload({**payload, "tree_type": "quad"})
    with pytest.raises(InvalidArgumentError):
        KFNModel.from_payload(payload)

    tampered = json.loads(json.dumps(payload))
    tampered["engine"]["tree"]["old_from_new"] = tampered["engine"]["tree"]["old_from_new"][::-1]
    with pytest.raises(InvalidArgumentError):
        NSModel.from_payload(tampered)


def test_engine_state_must_match_tree_type():
    reference, _ = _dataset(56)
    model = NSModel("kd")
    model.build_model(reference)
    payload = model.to_dict()
    payload["tree_type"] = "spill"

    with pytest.raises(InvalidArgumentError):
        NSModel.from_payload(payload)
