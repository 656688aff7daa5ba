"""Tests for mdmforge.config."""

from __future__ import annotations

import json
import stat
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from mdmforge.config import (
    atomic_write,
    get_accounts_dir,
    get_config_dir,
    get_credentials_dir,
    get_data_dir,
    get_templates_dir,
    load_global_config,
    load_project_config,
    resolve_config,
    resolve_credential,
    save_global_config,
)
from mdmforge.exceptions import ConfigError
from mdmforge.models import GlobalConfig, ProfileDefaults


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


# ---------------------------------------------------------------------------
# Directory layout
# ---------------------------------------------------------------------------


class TestXDGPaths:
    def test_config_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("mdmforge.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_config_dir()
        assert result == tmp_path / ".config" / "mdmforge"
        assert result.is_dir()

    def test_data_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("mdmforge.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "share"))

        assert get_data_dir() == tmp_path / "share" / "mdmforge"

    def test_fallback_layout(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("mdmforge.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_config_dir() == tmp_path / ".mdmforge"
        assert get_data_dir() == tmp_path / ".mdmforge" / "data"

    def test_secrets_live_apart_from_metadata(self, isolated_config: Path) -> None:
        assert get_accounts_dir() == isolated_config / "config" / "mdmforge" / "accounts"
        assert get_credentials_dir() == isolated_config / "data" / "mdmforge" / "credentials"
        assert get_templates_dir().is_dir()


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


class TestAtomicWrite:
    def test_text_and_bytes(self, tmp_path: Path) -> None:
        atomic_write(tmp_path / "a.txt", "héllo")
        atomic_write(tmp_path / "b.bin", b"\x00\x01")
        assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "héllo"
        assert (tmp_path / "b.bin").read_bytes() == b"\x00\x01"

    def test_overwrites_and_creates_parents(self, tmp_path: Path) -> None:
        target = tmp_path / "x" / "y" / "file.txt"
        atomic_write(target, "old")
        atomic_write(target, "new")
        assert target.read_text(encoding="utf-8") == "new"
        assert list(target.parent.iterdir()) == [target]

    def test_mode_applied(self, tmp_path: Path) -> None:
        target = tmp_path / "secret.json"
        atomic_write(target, "{}", mode=0o600)
        assert stat.S_IMODE(target.stat().st_mode) == 0o600

    def test_no_temp_files_left_on_error(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        with patch("mdmforge.config.os.fsync", side_effect=OSError("disk error")):
            with pytest.raises(OSError, match="disk error"):
                atomic_write(target, "will fail")
        assert list(tmp_path.iterdir()) == []


# ---------------------------------------------------------------------------
# Global and project config
# ---------------------------------------------------------------------------


class TestGlobalConfig:
    def test_defaults_when_missing(self, isolated_config: Path) -> None:
        config = load_global_config()
        assert config.default_account is None
        assert config.network.verify_ssl is True
        assert config.profile_defaults.scope == "System"

    def test_save_and_load(self, isolated_config: Path) -> None:
        save_global_config(
            GlobalConfig(
                default_account="acme",
                profile_defaults=ProfileDefaults(identifier_prefix="com.acme", export_format="binary"),
            )
        )
        loaded = load_global_config()
        assert loaded.default_account == "acme"
        assert loaded.profile_defaults.identifier_prefix == "com.acme"
        assert loaded.profile_defaults.export_format == "binary"

    def test_invalid_json(self, isolated_config: Path) -> None:
        (get_config_dir() / "config.json").write_text("{nope", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid global config"):
            load_global_config()

    def test_invalid_schema(self, isolated_config: Path) -> None:
        _write_json(get_config_dir() / "config.json", {"network": {"probe_timeout": "soon"}})
        with pytest.raises(ConfigError):
            load_global_config()

    def test_project_config(self, isolated_config: Path) -> None:
        assert load_project_config() is None
        _write_json(isolated_config / "mdmforge.json", {"default_account": "proj"})
        assert load_project_config() == {"default_account": "proj"}

    def test_project_config_invalid(self, isolated_config: Path) -> None:
        (isolated_config / "mdmforge.json").write_text("[", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid project config"):
            load_project_config()


class TestResolveConfig:
    """CLI > env > project > global > the only account."""

    def test_nothing_configured(self, isolated_config: Path) -> None:
        _, account_id = resolve_config()
        assert account_id is None

    def test_global_default(self, isolated_config: Path) -> None:
        save_global_config(GlobalConfig(default_account="global"))
        assert resolve_config()[1] == "global"

    def test_project_overrides_global(self, isolated_config: Path) -> None:
        save_global_config(GlobalConfig(default_account="global"))
        _write_json(isolated_config / "mdmforge.json", {"default_account": "project"})
        assert resolve_config()[1] == "project"

    def test_env_overrides_project(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write_json(isolated_config / "mdmforge.json", {"default_account": "project"})
        monkeypatch.setenv("MDMFORGE_ACCOUNT", "env")
        assert resolve_config()[1] == "env"

    def test_cli_overrides_env(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MDMFORGE_ACCOUNT", "env")
        assert resolve_config(cli_account="cli")[1] == "cli"

    def test_auto_select_single_account(self, isolated_config: Path) -> None:
        assert resolve_config(known_accounts=["only"])[1] == "only"
        assert resolve_config(known_accounts=["a", "b"])[1] is None

    def test_auto_select_disabled(self, isolated_config: Path) -> None:
        save_global_config(GlobalConfig(auto_select_single_account=False))
        assert resolve_config(known_accounts=["only"])[1] is None


# ---------------------------------------------------------------------------
# Credential sources
# ---------------------------------------------------------------------------


class TestResolveCredential:
    def test_env_source(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("JAMF_CLIENT_SECRET", "secret123")
        assert resolve_credential("env:JAMF_CLIENT_SECRET") == "secret123"

    def test_env_source_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR", raising=False)
        with pytest.raises(ConfigError, match="not set"):
            resolve_credential("env:NONEXISTENT_VAR")

    def test_file_source(self, tmp_path: Path) -> None:
        cred_file = tmp_path / "secret.txt"
        cred_file.write_text("  my-secret  \n", encoding="utf-8")
        assert resolve_credential(f"file:{cred_file}") == "my-secret"

    def test_file_source_missing(self) -> None:
        with pytest.raises(ConfigError, match="not found"):
            resolve_credential("file:/nonexistent/path/secret.txt")

    def test_prompt_with_tty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("sys.stdin.isatty", lambda: True)
        monkeypatch.setattr("getpass.getpass", lambda prompt: "typed-secret")
        assert resolve_credential("prompt") == "typed-secret"

    def test_prompt_without_tty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("sys.stdin.isatty", lambda: False)
        with pytest.raises(ConfigError, match="not a TTY"):
            resolve_credential("prompt")

    def test_unknown_source(self) -> None:
        with pytest.raises(ConfigError, match="Unknown credential source"):
            resolve_credential("magic:wand")
