"""Username/password exchange plugin.

See Also:
    :class:`~mdmforge.plugins.basic.plugin.BasicExchangePlugin`
"""

from mdmforge.plugins.basic.plugin import BasicExchangePlugin

__all__ = ["BasicExchangePlugin"]
