"""Process exit codes.

Every :class:`~mdmforge.exceptions.MdmForgeError` subclass carries one of
these, so scripts can react to the outcome without parsing stderr; for
example, rerun ``mdmforge auth login`` only when a submit exits with 8.

Example::

    $ mdmforge profile submit zoom.yaml
    $ echo $?
    8
"""

EXIT_SUCCESS = 0

EXIT_GENERIC_FAILURE = 1
"""Storage, config and unexpected errors."""

EXIT_INVALID_USAGE = 2
"""Bad flags or arguments, unknown account, unit or template."""

EXIT_AUTH_FAILURE = 3
"""No token endpoint accepted the credentials, or a sign-in is already running."""

EXIT_SUBMISSION_FAILURE = 5
"""The server rejected a profile upload."""

EXIT_CONNECTION_ERROR = 6
"""No candidate endpoint answered (DNS, TLS, refused, timeout)."""

EXIT_SESSION_EXPIRED = 8
"""Signed out, token expired, or the server answered 401. Sign in again."""

EXIT_VALIDATION_FAILED = 9
"""The profile has blocking validation errors; nothing was exported or sent."""
