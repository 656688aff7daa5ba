"""Base classes for credential-exchange plugins.

An exchange plugin turns one kind of credential (client id + secret, or
username + password) into a bearer token. Every plugin shares the same
fallback behaviour, implemented once in :meth:`ExchangePlugin.exchange`:

1. Try each candidate token path in order.
2. Accept the first response that carries a token.
3. If every candidate fails, raise the *most specific* failure: a 4xx with
   a server message beats a bare 4xx, which beats a 5xx, then a success
   response without a usable token, and finally a network failure.

Concrete plugins only declare their candidate paths and how to shape the
request.

See Also:
    :class:`~mdmforge.auth.manager.ExchangeManager` -- dispatches to plugins
    by credential type.
"""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

import httpx
from pydantic import BaseModel, SecretStr

from mdmforge.auth.urls import endpoint_url
from mdmforge.client.async_client import extract_error_message
from mdmforge.exceptions import AuthenticationError
from mdmforge.models import TokenRecord

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME = timedelta(hours=1)


class ClientCredentials(BaseModel):
    """An API client id and secret."""

    client_id: str
    client_secret: SecretStr


class BasicCredentials(BaseModel):
    """A username and password."""

    username: str
    password: SecretStr


Credentials = Union[ClientCredentials, BasicCredentials]


class FailureKind(str, enum.Enum):
    HTTP = "http"
    MALFORMED = "malformed"
    NETWORK = "network"


class ExchangeFailure:
    """Why a single candidate endpoint did not yield a token.

    Args:
        endpoint: The candidate path that was tried.
        kind: Whether the failure was an HTTP status, an unusable success
            body, or a network error.
        status_code: HTTP status, when a response was received.
        message: Server-provided (already redacted) message, if any.
    """

    def __init__(
        self,
        endpoint: str,
        kind: FailureKind,
        status_code: Optional[int] = None,
        message: str = "",
    ) -> None:
        self.endpoint = endpoint
        self.kind = kind
        self.status_code = status_code
        self.message = message

    @property
    def specificity(self) -> int:
        """Rank used to pick the failure that best explains the outcome."""
        status = self.status_code or 0
        if self.kind == FailureKind.HTTP and 400 <= status < 500:
            return 5 if self.message else 4
        if self.kind == FailureKind.HTTP:
            return 3
        if self.kind == FailureKind.MALFORMED:
            return 2
        return 1

    def describe(self) -> str:
        if self.kind == FailureKind.NETWORK:
            return f"could not reach {self.endpoint} ({self.message})"
        if self.kind == FailureKind.MALFORMED:
            return f"{self.endpoint} returned no usable token ({self.message})"
        detail = f"HTTP {self.status_code}"
        if self.message:
            detail = f"{detail}: {self.message}"
        return f"{self.endpoint} answered {detail}"


def most_specific(failures: list[ExchangeFailure]) -> ExchangeFailure:
    """Return the highest-ranked failure; earlier candidates win ties."""
    best = failures[0]
    for failure in failures[1:]:
        if failure.specificity > best.specificity:
            best = failure
    return best


def parse_token_response(
    payload: Any,
    now: Optional[datetime] = None,
) -> TokenRecord:
    """Normalise a token response body into a :class:`~mdmforge.models.TokenRecord`.

    Accepts ``token`` or ``access_token`` for the token, and ``expires_in``
    (seconds) or ``expires`` (ISO-8601 timestamp) for the expiry. A missing
    or unparseable expiry defaults to one hour.

    Raises:
        ValueError: If the body is not an object, carries no token, or has
            an ``expires_in`` too large to represent.
    """
    if not isinstance(payload, dict):
        raise ValueError("response body is not a JSON object")
    token = payload.get("token") or payload.get("access_token")
    if not token or not isinstance(token, str):
        raise ValueError("response has no 'token' or 'access_token' field")

    now = now or datetime.now(timezone.utc)
    expires_at = now + DEFAULT_TOKEN_LIFETIME
    expires_in = payload.get("expires_in")
    expires = payload.get("expires")
    if isinstance(expires_in, (int, float)) and not isinstance(expires_in, bool):
        try:
            expires_at = now + timedelta(seconds=float(expires_in))
        except OverflowError as exc:
            raise ValueError(f"'expires_in' out of range: {expires_in!r}") from exc
    elif isinstance(expires, str):
        try:
            parsed = datetime.fromisoformat(expires.replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Unparseable token expiry; assuming one hour")
        else:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            expires_at = parsed

    return TokenRecord(token=token, expires_at=expires_at)


class ExchangePlugin(ABC):
    """Abstract base class for credential-exchange strategies.

    Subclasses declare :attr:`auth_type`, :attr:`credential_type`,
    :attr:`candidate_paths`, and :meth:`build_request`.
    """

    @property
    @abstractmethod
    def auth_type(self) -> str:
        """Identifier of this exchange mode (e.g. ``"client_credentials"``)."""

    @property
    @abstractmethod
    def credential_type(self) -> type[BaseModel]:
        """The credential model this plugin accepts."""

    @property
    @abstractmethod
    def candidate_paths(self) -> tuple[str, ...]:
        """Ordered token endpoint paths, most current API first."""

    @abstractmethod
    def build_request(self, credentials: Any) -> dict[str, Any]:
        """Return keyword arguments for :meth:`httpx.AsyncClient.post`."""

    async def exchange(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        credentials: Any,
    ) -> TokenRecord:
        """Exchange *credentials* for a token, trying each candidate path.

        Args:
            client: An open, unauthenticated HTTP client.
            base_url: Normalised server address.
            credentials: An instance of :attr:`credential_type`.

        Returns:
            The token from the first candidate that issued one.

        Raises:
            AuthenticationError: If every candidate failed; the message
                carries the most specific cause.
        """
        failures: list[ExchangeFailure] = []
        for path in self.candidate_paths:
            url = endpoint_url(base_url, path)
            try:
                response = await client.post(url, **self.build_request(credentials))
            except httpx.TransportError as exc:
                logger.debug("Token request to %s failed: %s", path, type(exc).__name__)
                failures.append(
                    ExchangeFailure(path, FailureKind.NETWORK, message=type(exc).__name__)
                )
                continue

            if response.status_code >= 400:
                message = extract_error_message(response)
                logger.debug("Token request to %s answered %d", path, response.status_code)
                failures.append(
                    ExchangeFailure(path, FailureKind.HTTP, response.status_code, message)
                )
                continue

            try:
                record = parse_token_response(response.json())
            except ValueError as exc:
                logger.debug("Token response from %s unusable: %s", path, exc)
                failures.append(
                    ExchangeFailure(path, FailureKind.MALFORMED, response.status_code, str(exc))
                )
                continue

            logger.info("Obtained %s token from %s", self.auth_type, path)
            return record

        cause = most_specific(failures)
        raise AuthenticationError(f"Authentication failed: {cause.describe()}")
