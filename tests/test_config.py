import numpy as np
import pytest

from dualtreex import config as dx_config
from dualtreex.queries import NeighborSearch

_ENV_KEYS = [
    "DUALTREEX_LOG_LEVEL",
    "DUALTREEX_ENABLE_DIAGNOSTICS",
    "DUALTREEX_ENABLE_NUMBA",
    "DUALTREEX_METRIC",
    "DUALTREEX_LEAF_SIZE",
    "DUALTREEX_ROTATION_MAX_ATTEMPTS",
    "DUALTREEX_NAIVE_BLOCK_SIZE",
]


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    dx_config.reset_runtime_config_cache()
    yield
    dx_config.reset_runtime_config_cache()


def test_runtime_config_defaults():
    runtime = dx_config.runtime_config()

    assert runtime.log_level == "INFO"
    assert runtime.enable_diagnostics is True
    assert runtime.enable_numba is False
    assert runtime.metric == "euclidean"
    assert runtime.leaf_size == 20
    assert runtime.rotation_max_attempts == 100
    assert runtime.naive_block_size == 1024


def test_numeric_overrides(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DUALTREEX_LEAF_SIZE", "7")
    monkeypatch.setenv("DUALTREEX_ROTATION_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("DUALTREEX_NAIVE_BLOCK_SIZE", "16")
    dx_config.reset_runtime_config_cache()

    runtime = dx_config.runtime_config()

    assert runtime.leaf_size == 7
    assert runtime.rotation_max_attempts == 3
    assert runtime.naive_block_size == 16


@pytest.mark.parametrize("value", ["0", "-4", "many"])
def test_invalid_leaf_size(monkeypatch: pytest.MonkeyPatch, value: str):
    monkeypatch.setenv("DUALTREEX_LEAF_SIZE", value)
    dx_config.reset_runtime_config_cache()

    with pytest.raises(ValueError):
        dx_config.runtime_config()


def test_invalid_log_level(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DUALTREEX_LOG_LEVEL", "chatty")
    dx_config.reset_runtime_config_cache()

    with pytest.raises(ValueError):
        dx_config.runtime_config()


def test_disable_diagnostics_flag(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DUALTREEX_ENABLE_DIAGNOSTICS", "0")
    monkeypatch.setenv("DUALTREEX_ENABLE_NUMBA", "yes")
    dx_config.reset_runtime_config_cache()

    runtime = dx_config.runtime_config()

    assert runtime.enable_diagnostics is False
    assert runtime.enable_numba is True


def test_runtime_config_from_env_matches_cached(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DUALTREEX_LOG_LEVEL", "warning")
    dx_config.reset_runtime_config_cache()

    direct = dx_config.RuntimeConfig.from_env()
    cached = dx_config.runtime_config()

    assert direct == cached
    assert cached.log_level == "WARNING"


def test_describe_runtime_reports_expected_fields():
    summary = dx_config.describe_runtime()

    assert summary == {
        "log_level": "INFO",
        "enable_diagnostics": True,
        "enable_numba": False,
        "metric": "euclidean",
        "leaf_size": 20,
        "rotation_max_attempts": 100,
        "naive_block_size": 1024,
    }


def test_naive_block_size_does_not_change_results(monkeypatch: pytest.MonkeyPatch):
    rng = np.random.default_rng(0)
    reference = rng.normal(size=(60, 2))
    queries = rng.normal(size=(25, 2))
    engine = NeighborSearch("kd", naive=True)
    engine.train(reference)
    baseline = engine.search(queries, k=3)

    monkeypatch.setenv("DUALTREEX_NAIVE_BLOCK_SIZE", "4")
    dx_config.reset_runtime_config_cache()
    blocked = engine.search(queries, k=3)

    np.testing.assert_array_equal(blocked[0], baseline[0])
    np.testing.assert_array_equal(blocked[1], baseline[1])
