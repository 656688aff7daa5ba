"""Exchange manager -- registry and dispatcher for exchange plugins.

The :class:`ExchangeManager` maps exchange-mode names (``"client_credentials"``,
``"basic"``) to concrete :class:`~mdmforge.auth.base.ExchangePlugin`
instances and picks the right one for a given credential object.

For most use cases, call :func:`create_default_manager` to get a manager
pre-loaded with every built-in plugin.
"""

from __future__ import annotations

from typing import Any

from mdmforge.auth.base import ExchangePlugin
from mdmforge.exceptions import AuthenticationError


class ExchangeManager:
    """Registry and dispatcher for exchange plugins.

    Example::

        manager = ExchangeManager()
        manager.register(ClientCredentialsPlugin())
        plugin = manager.plugin_for(ClientCredentials(client_id="x", client_secret="y"))
    """

    def __init__(self) -> None:
        self._plugins: dict[str, ExchangePlugin] = {}

    def register(self, plugin: ExchangePlugin) -> None:
        """Register a plugin, replacing any plugin with the same :attr:`auth_type`."""
        self._plugins[plugin.auth_type] = plugin

    def get_plugin(self, auth_type: str) -> ExchangePlugin:
        """Retrieve a registered plugin by its exchange-mode name.

        Raises:
            AuthenticationError: If no plugin is registered for *auth_type*.
        """
        plugin = self._plugins.get(auth_type)
        if plugin is None:
            available = ", ".join(sorted(self._plugins)) or "(none)"
            raise AuthenticationError(
                f"No exchange plugin registered for type '{auth_type}'. "
                f"Available types: {available}"
            )
        return plugin

    def plugin_for(self, credentials: Any) -> ExchangePlugin:
        """Return the plugin that accepts *credentials*.

        Raises:
            AuthenticationError: If no registered plugin accepts this
                credential type.
        """
        for plugin in self._plugins.values():
            if isinstance(credentials, plugin.credential_type):
                return plugin
        raise AuthenticationError(
            f"No exchange plugin accepts {type(credentials).__name__} credentials"
        )

    def list_types(self) -> list[str]:
        return sorted(self._plugins.keys())


def create_default_manager() -> ExchangeManager:
    """Create an :class:`ExchangeManager` with the client-credentials and basic plugins."""
    from mdmforge.plugins.basic import BasicExchangePlugin
    from mdmforge.plugins.client_credentials import ClientCredentialsPlugin

    manager = ExchangeManager()
    manager.register(ClientCredentialsPlugin())
    manager.register(BasicExchangePlugin())
    return manager
