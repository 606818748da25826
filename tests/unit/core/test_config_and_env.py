"""Test environment variable management and configuration."""

import pytest

from casport.core import config as config_module
from casport.core.config import CasportConfig, configure, get_config
from casport.core.env import EnvManager
from casport.queue.types import RetryPolicy


class TestEnvManager:
    """Test EnvManager functionality."""

    def test_get_with_default(self, monkeypatch):
        env = EnvManager(auto_load=False)
        monkeypatch.setenv("CASPORT_TEST_VAR", "value")

        assert env.get("CASPORT_NONEXISTENT", "default") == "default"
        assert env.get("CASPORT_TEST_VAR") == "value"

    def test_required_missing(self, monkeypatch):
        monkeypatch.delenv("CASPORT_REQUIRED", raising=False)

        with pytest.raises(ValueError, match="CASPORT_REQUIRED"):
            EnvManager(auto_load=False).get("CASPORT_REQUIRED", required=True)

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("true", True), ("1", True), ("YES", True), ("off", False), ("0", False), ("", False)],
    )
    def test_get_bool(self, monkeypatch, value, expected):
        monkeypatch.setenv("CASPORT_FLAG", value)

        assert EnvManager(auto_load=False).get_bool("CASPORT_FLAG") is expected

    def test_get_int_and_float(self, monkeypatch):
        env = EnvManager(auto_load=False)
        monkeypatch.setenv("CASPORT_INT", "42")
        monkeypatch.setenv("CASPORT_FLOAT", "nope")

        assert env.get_int("CASPORT_INT") == 42
        assert env.get_float("CASPORT_FLOAT", 1.5) == 1.5

    def test_load_env_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CASPORT_FROM_FILE", raising=False)
        (tmp_path / ".env").write_text("CASPORT_FROM_FILE=loaded\n")

        env = EnvManager(project_root=tmp_path)

        assert env.loaded
        assert env.get("CASPORT_FROM_FILE") == "loaded"
        monkeypatch.delenv("CASPORT_FROM_FILE")

    def test_missing_env_file(self, tmp_path):
        env = EnvManager(project_root=tmp_path)

        assert not env.loaded
        assert env.load(tmp_path / "absent.env") is False

    def test_substitute(self, monkeypatch):
        env = EnvManager(auto_load=False)
        monkeypatch.setenv("CASPORT_DATA", "/srv/blobs")
        monkeypatch.delenv("CASPORT_UNSET", raising=False)

        assert env.substitute("file://${CASPORT_DATA}") == "file:///srv/blobs"
        assert env.substitute("sqlite://$CASPORT_DATA/x.db") == "sqlite:///srv/blobs/x.db"
        assert env.substitute("${CASPORT_UNSET:-./local}") == "./local"
        assert env.substitute("${CASPORT_UNSET}") == "${CASPORT_UNSET}"

    def test_substitute_required(self, monkeypatch):
        monkeypatch.delenv("CASPORT_UNSET", raising=False)

        with pytest.raises(ValueError, match="need a target"):
            EnvManager(auto_load=False).substitute("${CASPORT_UNSET:?need a target}")


class TestCasportConfig:
    """Test CasportConfig."""

    def test_defaults(self):
        config = CasportConfig()

        assert config.hash_algorithm == "sha256"
        assert config.batch_size == 10
        assert config.max_retries == 3

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"batch_size": 0},
            {"estimate_sample_size": -1},
            {"throughput_bytes_per_second": 0},
            {"log_format": "xml"},
            {"max_retries": -1},
        ],
    )
    def test_validation(self, kwargs):
        with pytest.raises(ValueError):
            CasportConfig(**kwargs)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("CASPORT_BATCH_SIZE", "4")
        monkeypatch.setenv("CASPORT_MAX_RETRIES", "7")
        monkeypatch.setenv("CASPORT_RETRY_BASE_DELAY", "0.25")
        monkeypatch.setenv("CASPORT_LOG_FORMAT", "JSON")

        config = CasportConfig.from_env(EnvManager(auto_load=False))

        assert config.batch_size == 4
        assert config.max_retries == 7
        assert config.retry_base_delay_seconds == 0.25
        assert config.log_format == "json"

    def test_queue_config(self):
        config = CasportConfig(batch_size=6, max_retries=1, retry_base_delay_seconds=2.0)

        queue_config = config.queue_config()

        assert queue_config.max_concurrent == 6
        assert config.queue_config(2).max_concurrent == 2
        assert queue_config.retry_policy == RetryPolicy(max_retries=1, base_delay_seconds=2.0)

    def test_global_config(self):
        custom = CasportConfig(batch_size=3)
        configure(custom)

        assert get_config() is custom

    def test_global_config_built_lazily(self):
        config_module._global_config = None

        assert isinstance(get_config(), CasportConfig)
        assert get_config() is get_config()
