"""Username/password exchange.

Sends HTTP Basic credentials to the token endpoint and receives a bearer
token in return. ``api/v1/auth/token`` is the current endpoint;
``uapi/auth/tokens`` serves older servers.
"""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel

from mdmforge.auth.base import BasicCredentials, ExchangePlugin

BASIC_PATHS: tuple[str, ...] = ("api/v1/auth/token", "uapi/auth/tokens")


class BasicExchangePlugin(ExchangePlugin):
    """Obtain a bearer token from a username and password."""

    @property
    def auth_type(self) -> str:
        return "basic"

    @property
    def credential_type(self) -> type[BaseModel]:
        return BasicCredentials

    @property
    def candidate_paths(self) -> tuple[str, ...]:
        return BASIC_PATHS

    def build_request(self, credentials: BasicCredentials) -> dict[str, Any]:
        return {
            "auth": httpx.BasicAuth(
                credentials.username, credentials.password.get_secret_value()
            ),
            "headers": {"Accept": "application/json"},
        }
