"""HTTP client for authenticated calls to the management server.

Classes:
    :class:`ApiClient` -- non-blocking client backed by :class:`httpx.AsyncClient`
    that injects a session's bearer token.

Example::

    from mdmforge.client import ApiClient

    async with ApiClient(session) as client:
        resp = await client.get("JSSResource/accounts")
"""

from mdmforge.client.async_client import ApiClient, describe_status, extract_error_message

__all__ = ["ApiClient", "describe_status", "extract_error_message"]
