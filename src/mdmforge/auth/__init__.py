"""Accounts, reachability, and credential exchange.

The main entry points are:

- :class:`CredentialStore` -- account metadata and tokens on disk.
- :class:`ConnectivityProber` -- reachability checks before any credentials
  are sent.
- :class:`AuthenticationEngine` -- the per-account connection state machine
  that turns credentials into a persisted :class:`~mdmforge.models.Session`.
- :class:`ClientCredentials` / :class:`BasicCredentials` -- the two
  supported credential kinds.

Typical usage::

    from mdmforge.auth import AuthenticationEngine, ClientCredentials, CredentialStore

    engine = AuthenticationEngine(CredentialStore())
    session = await engine.connect(account, ClientCredentials(client_id="x", client_secret="y"))
"""

from mdmforge.auth.base import BasicCredentials, ClientCredentials, ExchangePlugin
from mdmforge.auth.credential_store import CredentialStore
from mdmforge.auth.engine import AuthenticationEngine
from mdmforge.auth.manager import ExchangeManager, create_default_manager
from mdmforge.auth.prober import ConnectivityProber

__all__ = [
    "AuthenticationEngine",
    "BasicCredentials",
    "ClientCredentials",
    "ConnectivityProber",
    "CredentialStore",
    "ExchangeManager",
    "ExchangePlugin",
    "create_default_manager",
]
