import logging

import pytest

from provchain.config import default_config, new_config_from_map
from provchain.store import ConfigStore, from_context, to_context


def _config_map(data=None, name="chains-config"):
    cm = {"metadata": {"name": name, "namespace": "tekton-chains"}}
    if data is not None:
        cm["data"] = data
    return cm


def test_new_config_store():
    store = ConfigStore(logging.getLogger("test"))
    store.on_config_changed(_config_map())
    assert store.load() == default_config()

    store.on_config_changed(_config_map({"artifacts.taskrun.signer": "x509"}))
    assert store.load().artifacts.task_runs.signer == "x509"

    store.on_config_changed(_config_map({"artifacts.taskrun.signer": "kms"}))
    assert store.load().artifacts.task_runs.signer == "kms"


def test_load_before_any_config_raises():
    with pytest.raises(LookupError):
        ConfigStore().load()


def test_invalid_update_keeps_previous():
    store = ConfigStore()
    store.on_config_changed(_config_map({"artifacts.taskrun.signer": "kms"}))
    store.on_config_changed(_config_map({"artifacts.taskrun.signer": "bogus"}))
    assert store.load().artifacts.task_runs.signer == "kms"


def test_other_config_map_ignored():
    store = ConfigStore()
    store.on_config_changed(_config_map({"artifacts.taskrun.signer": "kms"}, name="other"))
    with pytest.raises(LookupError):
        store.load()


def test_load_returns_copy():
    store = ConfigStore()
    store.on_config_changed(_config_map())
    first = store.load()
    first.builder.id = "changed"
    assert store.load().builder.id == "tekton-chains"


def test_on_after_store_callbacks():
    seen = []
    store = ConfigStore(None, lambda name, value: seen.append((name, value.artifacts.oci.signer)))
    store.on_config_changed(_config_map({"artifacts.oci.signer": "kms"}))
    assert seen == [("chains-config", "kms")]


def test_to_context_round_trip():
    cfg = new_config_from_map({"builder.id": "ctx-builder"})
    ctx = to_context(cfg)
    assert ctx.run(from_context).builder.id == "ctx-builder"


def test_from_context_without_config_raises():
    with pytest.raises(LookupError):
        from_context()


def test_store_to_context():
    store = ConfigStore()
    store.on_config_changed(_config_map({"artifacts.taskrun.format": "in-toto"}))
    ctx = store.to_context()
    assert ctx.run(from_context).artifacts.task_runs.format == "in-toto"