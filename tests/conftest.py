"""Shared test fixtures for mdmforge.

Provides reusable fixtures for isolated config environments, stored
accounts, stub servers built on :class:`httpx.MockTransport`, output state,
and running CLI commands. These fixtures are automatically discovered by
pytest and available to all test modules without explicit imports.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import httpx
import pytest

from mdmforge.auth.credential_store import CredentialStore
from mdmforge.models import Account, Session
from mdmforge.output import OutputFormat, OutputManager, reset_output, set_output


SERVER = "https://acme.example.com"

Handler = Callable[[httpx.Request], httpx.Response]


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def _restore_package_logger() -> None:
    """Undo configure_logging() so no handler outlives the stream it writes to."""
    logger = logging.getLogger("mdmforge")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path
    so that tests never touch real user config or credentials. Clears
    MDMFORGE_* environment variables and changes the working directory to
    tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("mdmforge.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.delenv("MDMFORGE_ACCOUNT", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Accounts and sessions
# ---------------------------------------------------------------------------


@pytest.fixture
def store(tmp_path: Path) -> CredentialStore:
    """A CredentialStore writing to disposable directories."""
    return CredentialStore(
        accounts_dir=tmp_path / "accounts",
        credentials_dir=tmp_path / "credentials",
    )


@pytest.fixture
def account() -> Account:
    return Account(id="acme", server_url=SERVER, display_name="Acme")


@pytest.fixture
def session() -> Session:
    """A session valid for one hour against the stub server."""
    return Session(
        account_id="acme",
        server_url=SERVER,
        token="session-token",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
    )


@pytest.fixture
def expired_session() -> Session:
    return Session(
        account_id="acme",
        server_url=SERVER,
        token="session-token",
        expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
    )


# ---------------------------------------------------------------------------
# Stub server
# ---------------------------------------------------------------------------


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every request it served."""

    def __init__(self, handler: Handler) -> None:
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    @property
    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def make_transport() -> Callable[[Handler], RecordingTransport]:
    """Factory for recording stub transports."""
    return RecordingTransport


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Set up a quiet output manager for tests that don't care about output.

    Installs a PLAIN-format, quiet OutputManager as the global output
    and resets it after the test completes.
    """
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    """Set up JSON output for tests that check JSON-formatted output."""
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner.

    Returns a CliRunner instance that captures stdout/stderr and
    provides a consistent interface for invoking Typer apps in tests.
    """
    from typer.testing import CliRunner

    return CliRunner()
