from pathlib import Path

import pytest
import yaml
from jsonschema import ValidationError, validate
from pydantic import ValidationError as ModelValidationError

from clusterward.modules.operator import config as config_module
from clusterward.modules.operator.config import OperatorConfig, get_config, set_config
from clusterward.utils import format_duration, parse_duration

SAMPLE_CONFIG = Path(__file__).parent / "data" / "config.yaml"


@pytest.fixture
def sample_path():
    return SAMPLE_CONFIG


@pytest.fixture(autouse=True)
def no_default_config(monkeypatch, tmp_path):
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATHS", [tmp_path / "missing.yaml"])
    for name in OperatorConfig.model_fields:
        monkeypatch.delenv(f"CLUSTERWARD_{name.upper()}", raising=False)
    set_config(None)
    yield
    set_config(None)


def test_parse_duration():
    assert parse_duration("90") == 90
    assert parse_duration("30s") == 30
    assert parse_duration("1h30m") == 5400
    assert parse_duration("720h") == 2592000
    assert parse_duration(15) == 15
    with pytest.raises(ValueError):
        parse_duration("1h banana")
    assert format_duration(2592000.0) == "2592000s"


def test_defaults():
    config = OperatorConfig.load()
    assert config.node_unreachable_toleration == 3600
    assert config.min_ready_master_nodes == 2
    assert not config.purge_dead_nodes
    assert config.rotate_certs_ttl == 720 * 3600
    assert config.full_reconcile_every == 60
    assert not config.scale_prometheus
    assert config.rook_priority_class == ""


def test_sample_file_matches_schema(sample_path):
    data = yaml.safe_load(sample_path.read_text())
    validate(instance=data, schema=OperatorConfig.model_json_schema())


def test_schema_rejects_bad_types():
    with pytest.raises(ValidationError):
        validate(instance={"min_ready_master_nodes": "two"}, schema=OperatorConfig.model_json_schema())


def test_load_file(sample_path):
    config = OperatorConfig.load(sample_path)
    assert config.purge_dead_nodes
    assert config.rook_storage_nodes_label == "storage=ceph"
    assert config.rook_priority_class == "system-node-critical"
    assert config.scale_prometheus
    assert config.rotate_certs_check_interval == 86400
    assert config.secret_certificates[0].secret == "registry-pki"
    assert config.secret_certificates[0].cert_key == "tls.crt"


def test_env_overrides_file_and_overrides_win(sample_path, monkeypatch):
    monkeypatch.setenv("CLUSTERWARD_MIN_READY_MASTER_NODES", "3")
    monkeypatch.setenv("CLUSTERWARD_REBALANCE", "ignored")
    monkeypatch.setenv("CLUSTERWARD_NODE_UNREACHABLE_TOLERATION", "5m")

    config = OperatorConfig.load(sample_path, purge_dead_nodes=False, clear_dead_nodes=None)

    assert config.min_ready_master_nodes == 3
    assert config.node_unreachable_toleration == 300
    assert not config.purge_dead_nodes
    assert config.clear_dead_nodes


def test_missing_explicit_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        OperatorConfig.load(tmp_path / "nope.yaml")


def test_replication_bounds():
    with pytest.raises(ModelValidationError):
        OperatorConfig(min_ceph_pool_replication=3, max_ceph_pool_replication=2)


def test_save_round_trips(tmp_path):
    path = tmp_path / "out" / "config.yaml"
    OperatorConfig(purge_dead_nodes=True, rotate_certs_ttl="48h").save(path)
    loaded = OperatorConfig.load(path)
    assert loaded.purge_dead_nodes
    assert loaded.rotate_certs_ttl == 48 * 3600


def test_global_config():
    assert get_config() is get_config()
    custom = OperatorConfig(min_ready_master_nodes=1)
    set_config(custom)
    assert get_config() is custom
