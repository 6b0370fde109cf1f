"""Unit tests for keygate/config.py — file loading, validation, env overrides."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from keygate.config import (
    SUPPORTED_VERSIONS,
    Config,
    RegistryConfig,
    ServerConfig,
    StoreConfig,
    load_config,
)
from keygate.constants import DEFAULT_POOL_SIZE, DEFAULT_PORT


def _write(tmp_path: Path, body: str) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(body))
    return str(path)


class TestDefaults:
    def test_missing_file_returns_defaults(self) -> None:
        config = load_config(config_path="/nonexistent/keygate/config.yaml")
        assert isinstance(config, Config)
        assert config.version == 1
        assert config.store.url is None
        assert config.store.pool_size == DEFAULT_POOL_SIZE
        assert config.registry.refresh_interval_s == 0.0
        assert config.server.host == "127.0.0.1"
        assert config.server.port == DEFAULT_PORT
        assert config.path is None

    def test_dataclass_defaults(self) -> None:
        assert StoreConfig().url is None
        assert RegistryConfig().refresh_interval_s == 0.0
        assert ServerConfig().port == DEFAULT_PORT

    def test_supported_versions(self) -> None:
        assert 1 in SUPPORTED_VERSIONS


class TestFileLoading:
    def test_full_file(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            """
            version: 1
            store:
              url: sqlite:///keys.db
              pool_size: 8
            registry:
              refresh_interval_s: 15
            server:
              host: 0.0.0.0
              port: 9000
            """,
        )
        config = load_config(config_path=path)
        assert config.store.url == "sqlite:///keys.db"
        assert config.store.pool_size == 8
        assert config.registry.refresh_interval_s == 15.0
        assert config.server.host == "0.0.0.0"
        assert config.server.port == 9000
        assert config.path == path

    def test_version_only(self, tmp_path: Path) -> None:
        config = load_config(config_path=_write(tmp_path, "version: 1\n"))
        assert config.store.url is None
        assert config.server.port == DEFAULT_PORT

    def test_keygate_config_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write(tmp_path, "version: 1\nserver:\n  port: 7777\n")
        monkeypatch.setenv("KEYGATE_CONFIG", path)
        assert load_config().server.port == 7777

    def test_empty_sections_use_defaults(self, tmp_path: Path) -> None:
        config = load_config(config_path=_write(tmp_path, "version: 1\nstore:\nregistry:\n"))
        assert config.store.pool_size == DEFAULT_POOL_SIZE
        assert config.registry.refresh_interval_s == 0.0


class TestValidation:
    def test_missing_version(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            load_config(config_path=_write(tmp_path, "server:\n  port: 1\n"))
        assert exc_info.value.code == 1

    def test_empty_file(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit):
            load_config(config_path=_write(tmp_path, ""))

    def test_unsupported_version(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit):
            load_config(config_path=_write(tmp_path, "version: 2\n"))
        assert "Unsupported config version" in capsys.readouterr().err

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit):
            load_config(config_path=_write(tmp_path, "version: 1\nstore: [unclosed\n"))

    def test_non_mapping(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit):
            load_config(config_path=_write(tmp_path, "- just\n- a list\n"))

    @pytest.mark.parametrize("pool_size", [0, -1, "four"])
    def test_invalid_pool_size(self, tmp_path: Path, pool_size: object) -> None:
        body = f"version: 1\nstore:\n  pool_size: {pool_size}\n"
        with pytest.raises(SystemExit):
            load_config(config_path=_write(tmp_path, body))

    def test_negative_refresh_interval(self, tmp_path: Path) -> None:
        body = "version: 1\nregistry:\n  refresh_interval_s: -5\n"
        with pytest.raises(SystemExit):
            load_config(config_path=_write(tmp_path, body))


class TestEnvOverrides:
    def test_database_url_without_file(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KEYGATE_DATABASE_URL", "sqlite:///env.db")
        assert load_config().store.url == "sqlite:///env.db"

    def test_database_url_beats_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = _write(tmp_path, "version: 1\nstore:\n  url: sqlite:///file.db\n")
        monkeypatch.setenv("KEYGATE_DATABASE_URL", "sqlite:///env.db")
        assert load_config(config_path=path).store.url == "sqlite:///env.db"

    def test_port_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KEYGATE_PORT", "9999")
        assert load_config().server.port == 9999

    def test_invalid_port_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KEYGATE_PORT", "not-a-port")
        with pytest.raises(SystemExit):
            load_config()
