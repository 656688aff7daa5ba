"""Helpers shared by the command modules.

Account lookup, construction of the network-facing services from the
resolved configuration, and running coroutines from synchronous Typer
callbacks.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Coroutine, Optional, TypeVar

from mdmforge.auth.credential_store import CredentialStore
from mdmforge.auth.engine import AuthenticationEngine
from mdmforge.config import get_templates_dir, resolve_config
from mdmforge.exceptions import InvalidUsageError, SessionExpired
from mdmforge.models import Account, GlobalConfig, Session, Template
from mdmforge.profile.catalog import load_templates
from mdmforge.submission.pipeline import SubmissionPipeline

T = TypeVar("T")


def run(coro: Coroutine[Any, Any, T]) -> T:
    """Run *coro* to completion on a fresh event loop."""
    return asyncio.run(coro)


def find_account(accounts: list[Account], ref: str) -> Account:
    """Find an account by id or case-insensitive display name.

    Raises:
        InvalidUsageError: If nothing matches, or a name matches twice.
    """
    for account in accounts:
        if account.id == ref:
            return account
    matches = [a for a in accounts if a.display_name.lower() == ref.lower()]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise InvalidUsageError(f"More than one account is named '{ref}'. Use the account id.")
    raise InvalidUsageError(f"No account matches '{ref}'. List accounts with: mdmforge account list")


def resolve_account(store: CredentialStore, ref: Optional[str] = None) -> tuple[GlobalConfig, Account]:
    """Resolve the account a command acts on.

    Uses :func:`~mdmforge.config.resolve_config` precedence, then the
    account flagged as default in the store.

    Raises:
        InvalidUsageError: If no account can be selected.
    """
    accounts = store.list_accounts()
    config, resolved = resolve_config(cli_account=ref, known_accounts=[a.id for a in accounts])
    if resolved is not None:
        return config, find_account(accounts, resolved)
    default = store.default_account()
    if default is not None:
        return config, default
    if not accounts:
        raise InvalidUsageError("No accounts configured. Add one with: mdmforge account add --server <url>")
    raise InvalidUsageError("Several accounts exist; choose one with --account or: mdmforge account default <name>")


def build_engine(config: GlobalConfig, store: CredentialStore) -> AuthenticationEngine:
    return AuthenticationEngine(store, network=config.network)


def build_pipeline(config: GlobalConfig) -> SubmissionPipeline:
    return SubmissionPipeline(network=config.network, platform=config.profile_defaults.platform)


def require_session(engine: AuthenticationEngine, account: Account) -> Session:
    """Return the live session for *account*.

    Raises:
        SessionExpired: If the account is signed out or its token lapsed.
    """
    session = engine.session(account.id)
    if session is None:
        raise SessionExpired(
            f"Not signed in to '{account.display_name}'. Run: mdmforge auth login --account {account.id}"
        )
    return session


def custom_templates(directory: Optional[Path] = None) -> list[Template]:
    """Templates from the user's template directory."""
    return load_templates(directory or get_templates_dir())
