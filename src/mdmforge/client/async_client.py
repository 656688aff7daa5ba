"""Asynchronous HTTP client for authenticated calls to the management server.

This module provides :class:`ApiClient`, a thin wrapper around
:class:`httpx.AsyncClient` that injects a session's bearer token, maps
network failures and 401 responses to typed exceptions, and otherwise hands
the response back to the caller. Domain decisions (a 409 during profile
upload, for example) belong to the caller, not to the client.

Every call is sent exactly once; there is no retry.

See Also:
    :class:`~mdmforge.submission.pipeline.SubmissionPipeline` -- the main
    consumer.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from mdmforge import __version__
from mdmforge.exceptions import ConnectivityError, SessionExpired, sanitize_for_logging
from mdmforge.models import Session

logger = logging.getLogger(__name__)

USER_AGENT = f"mdmforge/{__version__}"


def default_headers() -> dict[str, str]:
    """Headers sent on every request, authenticated or not."""
    return {"User-Agent": USER_AGENT}


def extract_error_message(response: httpx.Response) -> str:
    """Pull a short, redacted error description out of an error response.

    Understands the JSON shapes the server family uses (``message``,
    ``error_description``, ``error``, ``detail``, and the
    ``errors[].description`` list of the modern API). Plain-text bodies are
    used as-is; HTML and XML pages are ignored.

    Returns:
        The message, or an empty string when the body carries none.
    """
    try:
        detail = response.json()
    except (json.JSONDecodeError, ValueError):
        text = response.text.strip() if response.text else ""
        if not text or text.startswith("<"):
            return ""
        return sanitize_for_logging(text)

    msg: Any = ""
    if isinstance(detail, dict):
        msg = (
            detail.get("message")
            or detail.get("error_description")
            or detail.get("error")
            or detail.get("detail")
            or ""
        )
        errors = detail.get("errors")
        if not msg and isinstance(errors, list) and errors:
            first = errors[0]
            if isinstance(first, dict):
                msg = first.get("description") or first.get("code") or ""
    elif detail:
        msg = detail
    return sanitize_for_logging(str(msg)) if msg else ""


def describe_status(response: httpx.Response) -> str:
    """Return ``"HTTP <status>: <message>"`` for an error response."""
    msg = extract_error_message(response)
    prefix = f"HTTP {response.status_code}"
    return f"{prefix}: {msg}" if msg else prefix


class ApiClient:
    """Asynchronous client bound to one authenticated :class:`~mdmforge.models.Session`.

    Must be used as an async context manager.

    Args:
        session: The session whose server and bearer token are used.
        timeout: Per-request timeout in seconds.
        verify_ssl: Verify TLS certificates.
        transport: Optional httpx transport, used by tests to stub the
            server.

    Example::

        async with ApiClient(session) as client:
            response = await client.get("JSSResource/osxconfigurationprofiles")
    """

    def __init__(
        self,
        session: Session,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._session = session
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> ApiClient:
        self._client = httpx.AsyncClient(
            base_url=self._session.server_url,
            timeout=self._timeout,
            verify=self._verify_ssl,
            follow_redirects=True,
            headers=default_headers(),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        method: str,
        path: str,
        headers: Optional[dict[str, str]] = None,
        content: Optional[str | bytes] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make one authenticated request.

        Args:
            method: HTTP method.
            path: Path relative to the session's server.
            headers: Extra request headers.
            content: Raw request body.
            data: Form-encoded body.

        Returns:
            The :class:`httpx.Response` for any status other than 401.

        Raises:
            SessionExpired: If the session is already past its expiry, or
                the server answers 401.
            ConnectivityError: On timeout, DNS, TLS, or connection failures.
        """
        assert self._client is not None, "ApiClient must be entered with `async with` first"

        if self._session.is_expired():
            raise SessionExpired("The session has expired. Log in again to continue.")

        merged_headers = {**self._session.authorization_header(), **(headers or {})}
        logger.debug("%s %s", method, path)
        try:
            response = await self._client.request(
                method,
                path.lstrip("/"),
                headers=merged_headers,
                content=content,
                data=data,
            )
        except httpx.TransportError as exc:
            raise ConnectivityError(
                f"{method} {path} failed: {type(exc).__name__}"
            ) from exc

        logger.debug("%s %s -> %d", method, path, response.status_code)
        if response.status_code == 401:
            raise SessionExpired(
                f"The server rejected the session ({describe_status(response)}). "
                "Log in again to continue."
            )
        return response

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", path, **kwargs)
