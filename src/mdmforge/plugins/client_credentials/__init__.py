"""API client credentials exchange plugin.

Exchanges an API client id and secret for a bearer token using the
``client_credentials`` grant.

See Also:
    :class:`~mdmforge.plugins.client_credentials.plugin.ClientCredentialsPlugin`
"""

from mdmforge.plugins.client_credentials.plugin import ClientCredentialsPlugin

__all__ = ["ClientCredentialsPlugin"]
