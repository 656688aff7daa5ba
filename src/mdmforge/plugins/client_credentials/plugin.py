"""Client-credentials exchange against the server's OAuth token endpoint.

Current servers issue tokens at ``api/oauth/token``; some releases only
exposed the versioned ``api/v1/oauth/token`` path. Both are tried in that
order.

The client id and secret are sent as form fields
(``application/x-www-form-urlencoded``) alongside
``grant_type=client_credentials``, as :rfc:`6749` section 4.4 describes.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from mdmforge.auth.base import ClientCredentials, ExchangePlugin

CLIENT_CREDENTIAL_PATHS: tuple[str, ...] = ("api/oauth/token", "api/v1/oauth/token")


class ClientCredentialsPlugin(ExchangePlugin):
    """Obtain a bearer token from an API client id and secret."""

    @property
    def auth_type(self) -> str:
        return "client_credentials"

    @property
    def credential_type(self) -> type[BaseModel]:
        return ClientCredentials

    @property
    def candidate_paths(self) -> tuple[str, ...]:
        return CLIENT_CREDENTIAL_PATHS

    def build_request(self, credentials: ClientCredentials) -> dict[str, Any]:
        return {
            "data": {
                "grant_type": "client_credentials",
                "client_id": credentials.client_id,
                "client_secret": credentials.client_secret.get_secret_value(),
            },
            "headers": {"Accept": "application/json"},
        }
