"""Where mdmforge keeps its files, and how settings are resolved.

Layout on Linux and the BSDs follows XDG::

    $XDG_CONFIG_HOME/mdmforge/config.json      GlobalConfig
    $XDG_CONFIG_HOME/mdmforge/accounts/        one JSON file per account
    $XDG_CONFIG_HOME/mdmforge/templates/       user templates (YAML/JSON)
    $XDG_DATA_HOME/mdmforge/credentials/       session tokens, mode 0600
    $XDG_DATA_HOME/mdmforge/logs/              crash logs

On macOS and Windows the same tree lives under ``~/.mdmforge`` with the
data half in ``~/.mdmforge/data``. Account metadata and secrets are kept
in different roots so a config directory can be shared or backed up
without leaking tokens.

Every write goes through :func:`atomic_write`.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

from mdmforge.exceptions import ConfigError
from mdmforge.models import GlobalConfig

_APP_NAME = "mdmforge"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "mdmforge.json"
ACCOUNT_ENV_VAR = "MDMFORGE_ACCOUNT"


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def _root(xdg_var: str, xdg_default: str, fallback_sub: Optional[str]) -> Path:
    if _is_xdg_platform():
        base = os.environ.get(xdg_var) or str(Path.home() / xdg_default)
        return Path(base) / _APP_NAME
    root = Path.home() / f".{_APP_NAME}"
    return root / fallback_sub if fallback_sub else root


def get_config_dir() -> Path:
    """Settings, account metadata and templates. Created on first use."""
    return _ensure_dir(_root("XDG_CONFIG_HOME", ".config", None))


def get_data_dir() -> Path:
    """Secrets and logs. Created on first use."""
    return _ensure_dir(_root("XDG_DATA_HOME", os.path.join(".local", "share"), "data"))


def get_accounts_dir() -> Path:
    return _ensure_dir(get_config_dir() / "accounts")


def get_credentials_dir() -> Path:
    return _ensure_dir(get_data_dir() / "credentials")


def get_templates_dir() -> Path:
    return _ensure_dir(get_config_dir() / "templates")


def atomic_write(path: Path, data: str | bytes, mode: Optional[int] = None) -> None:
    """Replace *path* with *data* so readers never see a partial file.

    The content goes to a hidden temporary file next to *path*, is fsynced,
    then renamed over the target. If anything fails, including
    ``KeyboardInterrupt``, the temporary file is removed and the error
    propagates; the previous content of *path* is untouched.

    Args:
        path: Target file. Missing parent directories are created.
        data: ``str`` (stored as UTF-8) or ``bytes``.
        mode: Permission bits set before any byte is written, e.g.
            ``0o600`` for token files.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = data.encode("utf-8") if isinstance(data, str) else data

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        if mode is not None:
            os.chmod(tmp_name, mode)
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _read_json(path: Path, what: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Invalid {what} at {path}: {exc}") from exc


def load_global_config() -> GlobalConfig:
    """Read ``config.json``, or return defaults when it does not exist.

    Raises:
        ConfigError: If the file is not valid JSON or does not match
            :class:`~mdmforge.models.GlobalConfig`.
    """
    path = get_config_dir() / _CONFIG_FILENAME
    if not path.is_file():
        return GlobalConfig()
    data = _read_json(path, "global config")
    try:
        return GlobalConfig.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    text = json.dumps(config.model_dump(mode="json"), indent=2) + "\n"
    atomic_write(get_config_dir() / _CONFIG_FILENAME, text)


def load_project_config() -> Optional[dict[str, Any]]:
    """Read ``./mdmforge.json`` if the working directory has one.

    A folder of profile definitions can pin the account it submits to
    with ``{"default_account": "<id or name>"}``.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    data = _read_json(path, "project config")
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


def resolve_config(
    cli_account: Optional[str] = None,
    known_accounts: Optional[list[str]] = None,
) -> tuple[GlobalConfig, Optional[str]]:
    """Load the global config and pick the active account.

    The first of these that is set wins: ``--account``,
    ``$MDMFORGE_ACCOUNT``, ``default_account`` in ``./mdmforge.json``,
    ``default_account`` in ``config.json``. When none is set and exactly
    one account exists (``known_accounts``), that account is used unless
    ``auto_select_single_account`` is off.

    Returns:
        ``(config, account_ref)``; the reference may be an id or a display
        name, or ``None``.
    """
    config = load_global_config()
    project = load_project_config() or {}
    candidates = (
        cli_account,
        os.environ.get(ACCOUNT_ENV_VAR),
        project.get("default_account"),
        config.default_account,
    )
    resolved = next((c for c in candidates if c), None)
    if resolved is None and config.auto_select_single_account and known_accounts and len(known_accounts) == 1:
        resolved = known_accounts[0]
    return config, resolved


def resolve_credential(source: str, prompt_label: str = "Enter credential") -> str:
    """Fetch a secret so it never has to appear on the command line.

    ``env:NAME`` reads an environment variable, ``file:PATH`` reads a file
    (surrounding whitespace stripped) and ``prompt`` asks on the terminal
    without echo.

    Raises:
        ConfigError: If the variable is unset, the file is missing or
            unreadable, stdin is not a terminal, or the source is not one
            of the three forms.
    """
    kind, _, value = source.partition(":")

    if kind == "env" and value:
        secret = os.environ.get(value)
        if secret is None:
            raise ConfigError(f"Environment variable '{value}' is not set")
        return secret

    if kind == "file" and value:
        path = Path(value).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path}")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc.strerror or exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigError("Cannot prompt for a secret: stdin is not a TTY. Use env:VAR or file:PATH.")
        return getpass.getpass(f"{prompt_label}: ")

    raise ConfigError(f"Unknown credential source '{source}'. Use env:VAR, file:PATH or prompt.")
