"""Tests for the authentication engine state machine."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import httpx
import pytest
from pydantic import SecretStr

from mdmforge.auth.base import BasicCredentials, ClientCredentials
from mdmforge.auth.credential_store import CredentialStore
from mdmforge.auth.engine import AuthenticationEngine
from mdmforge.exceptions import (
    AuthenticationError,
    AuthenticationInProgressError,
    ConnectivityError,
    InvalidUsageError,
    StorageError,
)
from mdmforge.models import Account, ConnectionState

CREDENTIALS = ClientCredentials(client_id="client-1234", client_secret=SecretStr("s3cret-s3cret-s3cret"))


def _token_server(request: httpx.Request) -> httpx.Response:
    """Stub server: ping answers 200, the first token path 404s, the second issues a token."""
    path = request.url.path
    if path == "/api/oauth/token":
        return httpx.Response(404)
    if path == "/api/v1/oauth/token":
        return httpx.Response(200, json={"access_token": "tok-acme", "expires_in": 1800})
    if path == "/api/v1/auth/token":
        return httpx.Response(200, json={"token": "tok-basic", "expires": "2099-01-01T00:00:00Z"})
    return httpx.Response(200)


class TestConnect:
    @pytest.mark.asyncio
    async def test_successful_connect_persists_before_returning(
        self, store: CredentialStore, account: Account, make_transport
    ) -> None:
        store.store(account)
        transport = make_transport(_token_server)
        engine = AuthenticationEngine(store, transport=transport)

        session = await engine.connect(account, CREDENTIALS)

        assert engine.state(account.id) == ConnectionState.CONNECTED
        assert session.token.get_secret_value() == "tok-acme"
        record = store.retrieve_token(account.id)
        assert record is not None
        assert record.token.get_secret_value() == "tok-acme"
        assert transport.paths == ["/api/v1/ping", "/api/oauth/token", "/api/v1/oauth/token"]

    @pytest.mark.asyncio
    async def test_updates_account_metadata(self, store: CredentialStore, make_transport) -> None:
        account = Account(id="acme", server_url="ACME.example.com/api/", display_name="Acme")
        engine = AuthenticationEngine(store, transport=make_transport(_token_server))
        await engine.connect(account, CREDENTIALS)
        saved = store.load_account("acme")
        assert saved.server_url == "https://acme.example.com"
        assert saved.last_used is not None

    @pytest.mark.asyncio
    async def test_basic_credentials(self, store: CredentialStore, account: Account, make_transport) -> None:
        engine = AuthenticationEngine(store, transport=make_transport(_token_server))
        session = await engine.connect(account, BasicCredentials(username="admin", password=SecretStr("pw")))
        assert session.token.get_secret_value() == "tok-basic"
        assert session.expires_at == datetime(2099, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_unreachable_never_attempts_exchange(
        self, store: CredentialStore, account: Account, make_transport
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        transport = make_transport(handler)
        engine = AuthenticationEngine(store, transport=transport)
        with pytest.raises(ConnectivityError):
            await engine.connect(account, CREDENTIALS)

        assert engine.state(account.id) == ConnectionState.FAILED
        assert "Cannot reach" in engine.last_error(account.id)
        assert not any("token" in path for path in transport.paths)
        assert store.retrieve_token(account.id) is None

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, store: CredentialStore, account: Account, make_transport) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if "token" in request.url.path:
                return httpx.Response(401, json={"error_description": "Client authentication failed"})
            return httpx.Response(401)

        engine = AuthenticationEngine(store, transport=make_transport(handler))
        with pytest.raises(AuthenticationError, match="Client authentication failed"):
            await engine.connect(account, CREDENTIALS)
        assert engine.state(account.id) == ConnectionState.FAILED
        assert store.retrieve_token(account.id) is None

    @pytest.mark.asyncio
    async def test_malformed_address(self, store: CredentialStore) -> None:
        account = Account(id="bad", server_url="   ", display_name="Bad")
        engine = AuthenticationEngine(store)
        with pytest.raises(InvalidUsageError):
            await engine.connect(account, CREDENTIALS)
        assert engine.state("bad") == ConnectionState.FAILED

    @pytest.mark.asyncio
    async def test_persist_failure_leaves_account_signed_out(
        self, store: CredentialStore, account: Account, make_transport
    ) -> None:
        engine = AuthenticationEngine(store, transport=make_transport(_token_server))
        with patch.object(store, "store_token", side_effect=StorageError("disk full")):
            with pytest.raises(AuthenticationError, match="remain signed out"):
                await engine.connect(account, CREDENTIALS)
        assert engine.state(account.id) == ConnectionState.FAILED
        assert engine.session(account.id) is None

    @pytest.mark.asyncio
    async def test_metadata_failure_is_not_fatal(
        self, store: CredentialStore, account: Account, make_transport
    ) -> None:
        engine = AuthenticationEngine(store, transport=make_transport(_token_server))
        with patch.object(store, "store", side_effect=StorageError("read-only")):
            await engine.connect(account, CREDENTIALS)
        assert engine.state(account.id) == ConnectionState.CONNECTED
        assert store.retrieve_token(account.id) is not None

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, store: CredentialStore, account: Account, make_transport) -> None:
        failures = {"remaining": 3}

        def flaky(request: httpx.Request) -> httpx.Response:
            if "token" in request.url.path and failures["remaining"]:
                failures["remaining"] -= 1
                return httpx.Response(500)
            return _token_server(request)

        engine = AuthenticationEngine(store, transport=make_transport(flaky))
        with pytest.raises(AuthenticationError, match="HTTP 500"):
            await engine.connect(account, CREDENTIALS)
        assert engine.state(account.id) == ConnectionState.FAILED

        await engine.connect(account, CREDENTIALS)
        assert engine.state(account.id) == ConnectionState.CONNECTED


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_second_connect_is_rejected(
        self, store: CredentialStore, account: Account, make_transport
    ) -> None:
        gate = asyncio.Event()

        async def slow(request: httpx.Request) -> httpx.Response:
            await gate.wait()
            return _token_server(request)

        engine = AuthenticationEngine(store, transport=make_transport(slow))
        first = asyncio.create_task(engine.connect(account, CREDENTIALS))
        await asyncio.sleep(0)
        assert engine.state(account.id) == ConnectionState.CONNECTING

        with pytest.raises(AuthenticationInProgressError):
            await engine.connect(account, CREDENTIALS)
        with pytest.raises(AuthenticationInProgressError):
            engine.logout(account.id)

        gate.set()
        session = await first
        assert session.token.get_secret_value() == "tok-acme"
        assert engine.state(account.id) == ConnectionState.CONNECTED

    @pytest.mark.asyncio
    async def test_other_accounts_connect_independently(self, store: CredentialStore, make_transport) -> None:
        engine = AuthenticationEngine(store, transport=make_transport(_token_server))
        a = Account(id="a", server_url="https://a.example.com", display_name="A")
        b = Account(id="b", server_url="https://b.example.com", display_name="B")
        await asyncio.gather(engine.connect(a, CREDENTIALS), engine.connect(b, CREDENTIALS))
        assert engine.state("a") == engine.state("b") == ConnectionState.CONNECTED

    @pytest.mark.asyncio
    async def test_cancellation_frees_the_account(
        self, store: CredentialStore, account: Account, make_transport
    ) -> None:
        gate = asyncio.Event()

        async def hang(request: httpx.Request) -> httpx.Response:
            await gate.wait()
            return httpx.Response(200)

        engine = AuthenticationEngine(store, transport=make_transport(hang))
        task = asyncio.create_task(engine.connect(account, CREDENTIALS))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert engine.state(account.id) == ConnectionState.DISCONNECTED


class TestSessions:
    @pytest.mark.asyncio
    async def test_session_and_logout(self, store: CredentialStore, account: Account, make_transport) -> None:
        store.store(account)
        engine = AuthenticationEngine(store, transport=make_transport(_token_server))
        await engine.connect(account, CREDENTIALS)

        session = engine.session(account.id)
        assert session is not None
        assert session.authorization_header() == {"Authorization": "Bearer tok-acme"}

        engine.logout(account.id)
        assert engine.session(account.id) is None
        assert engine.state(account.id) == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_expired_token_drops_to_disconnected(
        self, store: CredentialStore, account: Account, make_transport
    ) -> None:
        store.store(account)
        engine = AuthenticationEngine(store, transport=make_transport(_token_server))
        await engine.connect(account, CREDENTIALS)
        store.store_token(account.id, "old", datetime.now(timezone.utc) - timedelta(seconds=1))

        assert engine.session(account.id) is None
        assert engine.state(account.id) == ConnectionState.DISCONNECTED

    def test_session_unknown_account(self, store: CredentialStore) -> None:
        assert AuthenticationEngine(store).session("nobody") is None

    def test_logout_tolerates_storage_failure(self, store: CredentialStore) -> None:
        engine = AuthenticationEngine(store)
        with patch.object(store, "delete_token", side_effect=StorageError("busy")):
            engine.logout("acme")
        assert engine.state("acme") == ConnectionState.DISCONNECTED

    def test_reset_clears_failure(self, store: CredentialStore) -> None:
        engine = AuthenticationEngine(store)
        engine._set_state("acme", ConnectionState.FAILED)
        engine._errors["acme"] = "boom"
        engine.reset("acme")
        assert engine.state("acme") == ConnectionState.DISCONNECTED
        assert engine.last_error("acme") is None
