"""Configuration loading: defaults, overrides and validation."""

from dataclasses import FrozenInstanceError

import pytest
import yaml

from sacco_config import (
    CONFIG_PATH_ENV,
    DATABASE_URL_ENV,
    DEFAULT_CONFIG_PATH,
    get_active_config,
)
from sacco_config.loader import compute_checksum, load_yaml_file, parse_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
    monkeypatch.delenv(DATABASE_URL_ENV, raising=False)


@pytest.fixture
def write_config(tmp_path):
    def _write(data, name="kernel.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


class TestDefaults:

    def test_shipped_defaults(self):
        config = get_active_config()
        assert config.source == str(DEFAULT_CONFIG_PATH)
        assert config.database.url.startswith("postgresql+psycopg2://")
        assert config.database.pool_size == 20
        assert config.compliance.window_months == 3
        assert config.compliance.low_compliance_threshold == 2
        assert config.documents.max_size_bytes == 10 * 1024 * 1024
        assert config.logging.level == "INFO"

    def test_config_is_frozen(self):
        config = get_active_config()
        with pytest.raises(FrozenInstanceError):
            config.compliance.window_months = 6

    def test_missing_sections_take_defaults(self):
        config = parse_config({"database": {"url": "sqlite://"}}, source="inline")
        assert config.compliance.window_months == 3
        assert config.documents.max_size_bytes == 10 * 1024 * 1024
        assert config.database.echo is False


class TestOverrides:

    def test_path_from_environment(self, monkeypatch, write_config):
        path = write_config(
            {"database": {"url": "sqlite://"}, "compliance": {"window_months": 6}}
        )
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))
        config = get_active_config()
        assert config.source == str(path)
        assert config.compliance.window_months == 6

    def test_explicit_path_wins_over_environment(self, monkeypatch, write_config):
        env_path = write_config({"database": {"url": "sqlite://"}}, name="env.yaml")
        arg_path = write_config(
            {"database": {"url": "sqlite://"}, "logging": {"level": "debug"}}, name="arg.yaml"
        )
        monkeypatch.setenv(CONFIG_PATH_ENV, str(env_path))
        config = get_active_config(arg_path)
        assert config.source == str(arg_path)
        assert config.logging.level == "DEBUG"

    def test_database_url_environment(self, monkeypatch):
        monkeypatch.setenv(DATABASE_URL_ENV, "postgresql+psycopg2://ci:ci@db:5432/srdcs_test")
        assert get_active_config().database.url == "postgresql+psycopg2://ci:ci@db:5432/srdcs_test"

    def test_database_url_changes_checksum(self, monkeypatch):
        baseline = get_active_config().checksum
        monkeypatch.setenv(DATABASE_URL_ENV, "sqlite://")
        assert get_active_config().checksum != baseline


class TestValidation:

    @pytest.mark.parametrize(
        "section, key, value",
        [
            ("compliance", "window_months", 0),
            ("compliance", "low_compliance_threshold", -2),
            ("compliance", "window_months", "three"),
            ("compliance", "window_months", True),
            ("documents", "max_size_bytes", 0),
            ("database", "pool_size", 0),
        ],
    )
    def test_bad_values_name_the_key(self, section, key, value):
        data = {"database": {"url": "sqlite://"}}
        data.setdefault(section, {})[key] = value
        with pytest.raises(ValueError, match=f"{section}.{key}"):
            parse_config(data, source="inline")

    def test_unknown_log_level(self):
        with pytest.raises(ValueError, match="logging.level"):
            parse_config({"database": {"url": "x"}, "logging": {"level": "chatty"}}, source="inline")

    def test_missing_database_url(self):
        with pytest.raises(KeyError):
            parse_config({"compliance": {}}, source="inline")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_empty_file_is_empty_mapping(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}


class TestChecksum:

    def test_stable_across_key_order(self):
        a = {"database": {"url": "sqlite://", "echo": False}, "compliance": {"window_months": 3}}
        b = {"compliance": {"window_months": 3}, "database": {"echo": False, "url": "sqlite://"}}
        assert compute_checksum(a) == compute_checksum(b)

    def test_same_file_same_checksum(self):
        assert get_active_config().checksum == get_active_config().checksum


def test_load_is_logged(captured_logs):
    config = get_active_config()
    (event,) = [r for r in captured_logs() if r["message"] == "sacco_config_loaded"]
    assert event["logger"] == "sacco_kernel.config"
    assert event["checksum"] == config.checksum
    assert event["window_months"] == 3
