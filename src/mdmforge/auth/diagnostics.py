"""Endpoint diagnostics for a connected account.

When uploads fail with 403s or 404s, the first question is which parts of
the API the session can actually see. :func:`diagnose` calls a handful of
read-only resources and reports the status of each one.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import httpx
from pydantic import BaseModel

from mdmforge.client.async_client import ApiClient, extract_error_message
from mdmforge.exceptions import ConnectivityError
from mdmforge.models import Session

logger = logging.getLogger(__name__)

DIAGNOSTIC_PATHS: tuple[str, ...] = (
    "api/v1/jamf-pro-version",
    "JSSResource/accounts",
    "JSSResource/computers",
    "JSSResource/osxconfigurationprofiles",
)


class EndpointCheck(BaseModel):
    endpoint: str
    status_code: Optional[int] = None
    ok: bool = False
    detail: str = ""


async def diagnose(
    session: Session,
    paths: Sequence[str] = DIAGNOSTIC_PATHS,
    timeout: float = 10.0,
    verify_ssl: bool = True,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list[EndpointCheck]:
    """Report the status of each diagnostic endpoint for *session*.

    Network failures on a single endpoint are recorded, not raised.

    Raises:
        SessionExpired: If the server rejects the session outright.
    """
    checks: list[EndpointCheck] = []
    async with ApiClient(session, timeout=timeout, verify_ssl=verify_ssl, transport=transport) as client:
        for path in paths:
            try:
                response = await client.get(path, headers={"Accept": "application/json"})
            except ConnectivityError as exc:
                checks.append(EndpointCheck(endpoint=path, detail=str(exc)))
                continue
            ok = response.status_code < 400
            detail = "" if ok else extract_error_message(response)
            logger.debug("Diagnostic %s -> %d", path, response.status_code)
            checks.append(
                EndpointCheck(
                    endpoint=path,
                    status_code=response.status_code,
                    ok=ok,
                    detail=detail,
                )
            )
    return checks
