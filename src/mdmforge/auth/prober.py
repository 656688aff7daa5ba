"""Reachability checks that run before any credentials are sent.

A management server exposes different health resources depending on its
version: current releases answer ``api/v1/ping``, older ones only expose the
Classic API, and some deployments sit behind a proxy that rejects
unauthenticated calls outright. :class:`ConnectivityProber` walks an ordered
list of candidate paths and declares the host reachable on the first HTTP
response of any status. A 401 or 403 still proves the stack is alive; only
network-layer failures on every candidate mean unreachable.

The status code of the answering endpoint is logged and kept on the
:class:`~mdmforge.models.ProbeResult` so that "up but rejecting" can be told
apart from a clean 200 when diagnosing a failed login.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import httpx

from mdmforge.auth.urls import endpoint_url, normalize_server_url
from mdmforge.client.async_client import default_headers
from mdmforge.exceptions import ConnectivityError
from mdmforge.models import ProbeAttempt, ProbeResult

logger = logging.getLogger(__name__)

PROBE_PATHS: tuple[str, ...] = ("api/v1/ping", "JSSResource/accounts", "api/ping")
"""Candidate health paths, modern API first."""

DEFAULT_PROBE_TIMEOUT = 10.0


class ConnectivityProber:
    """Determine whether a server answers HTTP at all.

    Args:
        timeout: Per-attempt timeout in seconds.
        verify_ssl: Verify TLS certificates.
        paths: Ordered candidate paths relative to the server root.
        transport: Optional httpx transport, used by tests to stub the
            network.

    Example::

        prober = ConnectivityProber()
        result = await prober.probe("acme.example.com")
        if result.reachable:
            print(result.endpoint, result.status_code)
    """

    def __init__(
        self,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
        verify_ssl: bool = True,
        paths: Sequence[str] = PROBE_PATHS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._paths = tuple(paths)
        self._transport = transport

    async def probe(self, server_url: str) -> ProbeResult:
        """Probe *server_url* and report whether any candidate answered.

        Args:
            server_url: Server address in any form accepted by
                :func:`~mdmforge.auth.urls.normalize_server_url`.

        Returns:
            A :class:`~mdmforge.models.ProbeResult`. Never raises for
            network failures; those are recorded as attempts.
        """
        base_url = normalize_server_url(server_url)
        attempts: list[ProbeAttempt] = []

        async with httpx.AsyncClient(
            timeout=self._timeout,
            verify=self._verify_ssl,
            follow_redirects=False,
            headers=default_headers(),
            transport=self._transport,
        ) as client:
            for path in self._paths:
                url = endpoint_url(base_url, path)
                try:
                    response = await client.get(url)
                except httpx.TransportError as exc:
                    logger.debug("Probe %s failed: %s", url, type(exc).__name__)
                    attempts.append(ProbeAttempt(endpoint=path, error=type(exc).__name__))
                    continue

                status = response.status_code
                attempts.append(ProbeAttempt(endpoint=path, status_code=status))
                if status in (401, 403):
                    logger.info(
                        "Server %s is reachable but %s answered %d without credentials",
                        base_url,
                        path,
                        status,
                    )
                else:
                    logger.info("Server %s is reachable (%s answered %d)", base_url, path, status)
                return ProbeResult(
                    server_url=base_url,
                    reachable=True,
                    endpoint=path,
                    status_code=status,
                    attempts=attempts,
                )

        logger.warning("Server %s did not answer on any of %d endpoints", base_url, len(attempts))
        return ProbeResult(server_url=base_url, reachable=False, attempts=attempts)

    async def ensure_reachable(self, server_url: str) -> ProbeResult:
        """Probe and raise if the server is unreachable.

        Raises:
            ConnectivityError: If every candidate failed at the network layer.
        """
        result = await self.probe(server_url)
        if not result.reachable:
            causes = ", ".join(
                f"{a.endpoint}: {a.error}" for a in result.attempts if a.error
            )
            raise ConnectivityError(
                f"Cannot reach {result.server_url}. Check the address, VPN and "
                f"firewall settings ({causes})"
            )
        return result
