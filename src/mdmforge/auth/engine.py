"""Authentication engine -- the per-account connection state machine.

Each account moves through::

    DISCONNECTED --connect()--> CONNECTING --+--> CONNECTED
                                             +--> FAILED

``connect()`` always probes the server first, so an unreachable host is
reported as a :class:`~mdmforge.exceptions.ConnectivityError` and never as
rejected credentials. Only after a successful probe is the credential
exchange attempted, through whichever
:class:`~mdmforge.auth.base.ExchangePlugin` accepts the credentials.

A session is written to the :class:`~mdmforge.auth.credential_store.CredentialStore`
before ``connect()`` returns it. If that write fails the account is left
``FAILED``: a session that cannot be persisted is treated as no session.

At most one ``connect()`` per account may be in flight. A second call while
the first is ``CONNECTING`` raises
:class:`~mdmforge.exceptions.AuthenticationInProgressError` immediately. The
state is claimed before the first ``await``, so the check cannot race within
one event loop.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from mdmforge.auth.credential_store import CredentialStore
from mdmforge.auth.manager import ExchangeManager, create_default_manager
from mdmforge.auth.prober import ConnectivityProber
from mdmforge.auth.urls import normalize_server_url
from mdmforge.client.async_client import default_headers
from mdmforge.exceptions import (
    AuthenticationError,
    AuthenticationInProgressError,
    ConnectivityError,
    InvalidUsageError,
    StorageError,
)
from mdmforge.models import Account, ConnectionState, NetworkConfig, Session

logger = logging.getLogger(__name__)


class AuthenticationEngine:
    """Connect accounts, persist their sessions, and track connection state.

    Args:
        store: Where sessions and account metadata are persisted.
        network: Timeouts and TLS settings.
        prober: Reachability checker. Defaults to a
            :class:`~mdmforge.auth.prober.ConnectivityProber` built from
            *network*.
        manager: Exchange plugin registry. Defaults to
            :func:`~mdmforge.auth.manager.create_default_manager`.
        transport: Optional httpx transport shared by the default prober and
            the exchange client, used by tests to stub the server.

    Example::

        engine = AuthenticationEngine(CredentialStore())
        session = await engine.connect(
            account, ClientCredentials(client_id="x", client_secret="y")
        )
    """

    def __init__(
        self,
        store: CredentialStore,
        network: Optional[NetworkConfig] = None,
        prober: Optional[ConnectivityProber] = None,
        manager: Optional[ExchangeManager] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._store = store
        self._network = network or NetworkConfig()
        self._transport = transport
        self._prober = prober or ConnectivityProber(
            timeout=self._network.probe_timeout,
            verify_ssl=self._network.verify_ssl,
            transport=transport,
        )
        self._manager = manager or create_default_manager()
        self._states: dict[str, ConnectionState] = {}
        self._errors: dict[str, str] = {}

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    def state(self, account_id: str) -> ConnectionState:
        """Return the current state of *account_id* (``DISCONNECTED`` if unknown)."""
        return self._states.get(account_id, ConnectionState.DISCONNECTED)

    def last_error(self, account_id: str) -> Optional[str]:
        """Return the user-facing message of the last failed ``connect()``."""
        return self._errors.get(account_id)

    def reset(self, account_id: str) -> None:
        """Return a ``FAILED`` or ``CONNECTED`` account to ``DISCONNECTED``.

        Raises:
            AuthenticationInProgressError: If a connect is in flight.
        """
        if self.state(account_id) == ConnectionState.CONNECTING:
            raise AuthenticationInProgressError(
                "Cannot reset an account while it is connecting"
            )
        self._set_state(account_id, ConnectionState.DISCONNECTED)
        self._errors.pop(account_id, None)

    def _set_state(self, account_id: str, state: ConnectionState) -> None:
        previous = self.state(account_id)
        if previous != state:
            logger.debug("Account %s: %s -> %s", account_id, previous.value, state.value)
        self._states[account_id] = state

    # ------------------------------------------------------------------ #
    # Connect / logout
    # ------------------------------------------------------------------ #

    async def connect(self, account: Account, credentials: Any) -> Session:
        """Probe the server, exchange *credentials*, and persist the session.

        Args:
            account: The account to connect. Its ``server_url`` is
                normalised before use.
            credentials: A :class:`~mdmforge.auth.base.ClientCredentials` or
                :class:`~mdmforge.auth.base.BasicCredentials` instance.

        Returns:
            The persisted :class:`~mdmforge.models.Session`.

        Raises:
            AuthenticationInProgressError: If *account* is already connecting.
            ConnectivityError: If the server could not be reached.
            AuthenticationError: If every exchange candidate failed, or the
                session could not be persisted.
            InvalidUsageError: If the server address is malformed.
        """
        if self.state(account.id) == ConnectionState.CONNECTING:
            raise AuthenticationInProgressError(
                f"Already connecting to '{account.display_name}'"
            )
        if self.state(account.id) != ConnectionState.DISCONNECTED:
            self._set_state(account.id, ConnectionState.DISCONNECTED)
        self._set_state(account.id, ConnectionState.CONNECTING)
        self._errors.pop(account.id, None)

        try:
            base_url = normalize_server_url(account.server_url)
            plugin = self._manager.plugin_for(credentials)
            await self._prober.ensure_reachable(base_url)

            async with httpx.AsyncClient(
                timeout=self._network.exchange_timeout,
                verify=self._network.verify_ssl,
                follow_redirects=True,
                headers=default_headers(),
                transport=self._transport,
            ) as client:
                record = await plugin.exchange(client, base_url, credentials)

            session = Session(
                account_id=account.id,
                server_url=base_url,
                token=record.token,
                expires_at=record.expires_at,
            )
            self._persist(account, session)
        except (ConnectivityError, AuthenticationError, InvalidUsageError) as exc:
            self._errors[account.id] = str(exc)
            self._set_state(account.id, ConnectionState.FAILED)
            logger.warning("Connecting '%s' failed: %s", account.display_name, exc)
            raise
        finally:
            # Cancelled mid-flight: free the account for another attempt.
            if self.state(account.id) == ConnectionState.CONNECTING:
                self._set_state(account.id, ConnectionState.DISCONNECTED)

        self._set_state(account.id, ConnectionState.CONNECTED)
        logger.info(
            "Connected '%s'; session valid until %s",
            account.display_name,
            session.expires_at.isoformat(),
        )
        return session

    def _persist(self, account: Account, session: Session) -> None:
        try:
            self._store.store_token(account.id, session.token, session.expires_at)
        except StorageError as exc:
            raise AuthenticationError(
                "Signed in, but the session could not be saved. You remain signed out."
            ) from exc

        updated = account.model_copy(
            update={
                "server_url": session.server_url,
                "last_used": datetime.now(timezone.utc),
            }
        )
        try:
            self._store.store(updated)
        except StorageError:
            logger.warning("Session saved, but account '%s' metadata was not updated", account.display_name)

    def session(self, account_id: str) -> Optional[Session]:
        """Return the live persisted session for *account_id*, if any.

        An expired or unreadable token yields ``None``, and a ``CONNECTED``
        account whose token has lapsed drops back to ``DISCONNECTED``.
        """
        record = self._store.retrieve_token(account_id)
        account = self._store.load_account(account_id)
        if record is None or account is None:
            if self.state(account_id) == ConnectionState.CONNECTED:
                self._set_state(account_id, ConnectionState.DISCONNECTED)
            return None
        return Session(
            account_id=account_id,
            server_url=account.server_url,
            token=record.token,
            expires_at=record.expires_at,
        )

    def logout(self, account_id: str) -> None:
        """Discard the stored session and return to ``DISCONNECTED``.

        A storage failure is logged; the account is considered signed out
        either way.

        Raises:
            AuthenticationInProgressError: If a connect is in flight.
        """
        if self.state(account_id) == ConnectionState.CONNECTING:
            raise AuthenticationInProgressError("Cannot log out while connecting")
        try:
            self._store.delete_token(account_id)
        except StorageError:
            logger.warning("Stored token for account %s could not be removed", account_id)
        self._set_state(account_id, ConnectionState.DISCONNECTED)
        self._errors.pop(account_id, None)
