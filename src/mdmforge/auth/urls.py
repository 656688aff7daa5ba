"""Server address normalisation and credential input checks.

Users paste server addresses in every imaginable shape -- with or without a
scheme, with a trailing ``/api`` copied from the API docs page, with stray
punctuation from a chat message. :func:`normalize_server_url` reduces all
of them to ``https://host[:port]`` so that probing and token exchange always
join candidate paths onto the same base.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from mdmforge.exceptions import InvalidUsageError

MAX_URL_LENGTH = 2048

_HOST_CHARS = re.compile(r"[^a-z0-9.\-]")
_CLIENT_ID = re.compile(r"^[A-Za-z0-9_\-]{8,128}$")
_USERNAME = re.compile(r"^[A-Za-z0-9._@\-]{3,64}$")
_API_SUFFIXES = ("/api/doc", "/api/docs", "/api")


def normalize_server_url(raw: str) -> str:
    """Reduce a user-supplied server address to ``scheme://host[:port]``.

    Strips whitespace and trailing ``,``/``;``, removes a trailing ``/api``
    or ``/api/doc`` suffix, adds ``https://`` when no scheme is present,
    drops any path, query, or fragment, and lower-cases the host.

    Args:
        raw: The address as typed.

    Returns:
        The normalised base URL, without a trailing slash.

    Raises:
        InvalidUsageError: If no host can be extracted.
    """
    text = raw.strip().rstrip(",;").strip().rstrip("/")
    lowered = text.lower()
    for suffix in _API_SUFFIXES:
        if lowered.endswith(suffix):
            text = text[: -len(suffix)]
            break

    if "://" not in text:
        text = f"https://{text}"

    parts = urlsplit(text)
    host = _HOST_CHARS.sub("", (parts.hostname or "").lower())
    if not host:
        raise InvalidUsageError(f"Invalid server address: {raw!r}")
    try:
        port = parts.port
    except ValueError as exc:
        raise InvalidUsageError(f"Invalid port in server address: {raw!r}") from exc

    netloc = host
    if port is not None:
        netloc = f"{host}:{port}"
    return f"{parts.scheme.lower()}://{netloc}"


def endpoint_url(base_url: str, path: str) -> str:
    """Join a relative API *path* onto a normalised *base_url*."""
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def validate_server_url(url: str) -> None:
    """Reject addresses that must never receive credentials.

    Raises:
        InvalidUsageError: If *url* is empty, too long, not ``https``, has
            no host, or contains ``..``.
    """
    if not url or not url.strip():
        raise InvalidUsageError("Server address cannot be empty")
    if len(url) > MAX_URL_LENGTH:
        raise InvalidUsageError(f"Server address exceeds {MAX_URL_LENGTH} characters")
    if ".." in url:
        raise InvalidUsageError("Server address contains invalid characters")
    parts = urlsplit(url)
    if parts.scheme != "https":
        raise InvalidUsageError("Server address must use https")
    if not parts.hostname:
        raise InvalidUsageError("Server address has no host")


def validate_client_id(client_id: str) -> None:
    """Client ids are 8-128 characters of letters, digits, ``-`` and ``_``."""
    if not _CLIENT_ID.match(client_id):
        raise InvalidUsageError(
            "Client ID must be 8-128 characters of letters, digits, '-' or '_'"
        )


def validate_client_secret(secret: str) -> None:
    if not 16 <= len(secret) <= 256:
        raise InvalidUsageError("Client secret must be 16-256 characters")


def validate_username(username: str) -> None:
    if not _USERNAME.match(username):
        raise InvalidUsageError(
            "Username must be 3-64 characters of letters, digits, '.', '_', '-' or '@'"
        )
