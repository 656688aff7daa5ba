"""Built-in credential-exchange plugins.

Each sub-package provides one :class:`~mdmforge.auth.base.ExchangePlugin`:

- :mod:`mdmforge.plugins.client_credentials` -- API client id + secret.
- :mod:`mdmforge.plugins.basic` -- username + password.
"""
