"""Exception hierarchy for mdmforge.

Every error raised on purpose is an :class:`MdmForgeError` with an
``exit_code`` from :mod:`mdmforge.exit_codes`. Commands print the message
and exit with that code; :func:`mdmforge.app.main` does the same for
anything a command lets through.

Hierarchy::

    MdmForgeError (exit 1)
    +-- InvalidUsageError               (exit 2)
    |   +-- UnknownUnitError            (exit 2)
    +-- ConnectivityError               (exit 6)
    +-- AuthenticationError             (exit 3)
    |   +-- AuthenticationInProgressError (exit 3)
    |   +-- SessionExpired              (exit 8)
    +-- StorageError                    (exit 1)
    +-- ValidationError                 (exit 9)
    +-- SubmissionError                 (exit 5)
    +-- ConfigError                     (exit 1)

Messages never contain secret material. Text echoed back from a server is
passed through :func:`sanitize_for_logging` before it is embedded.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Optional, Sequence

from mdmforge.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_SESSION_EXPIRED,
    EXIT_SUBMISSION_FAILURE,
    EXIT_VALIDATION_FAILED,
)

if TYPE_CHECKING:
    from mdmforge.models import ValidationIssue, ValidationPass

_SECRET_RUN = re.compile(r"[A-Za-z0-9._\-]{32,}")


def sanitize_for_logging(text: str, limit: int = 200) -> str:
    """Redact token-like runs and truncate *text* for logs and messages.

    Any run of 32 or more token characters is replaced by ``[REDACTED]``.

    Args:
        text: Arbitrary text, typically a server response body.
        limit: Maximum length of the returned string.

    Returns:
        The redacted, truncated text.
    """
    redacted = _SECRET_RUN.sub("[REDACTED]", text)
    if len(redacted) > limit:
        return redacted[:limit] + "..."
    return redacted


class MdmForgeError(Exception):
    """Root of the mdmforge errors.

    Args:
        message: Shown to the user as is, so it must not contain secrets.
        exit_code: Replaces the class default for this instance.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: Optional[int] = None) -> None:
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(MdmForgeError):
    """Raised for invalid CLI arguments or malformed input values."""

    exit_code = EXIT_INVALID_USAGE


class UnknownUnitError(InvalidUsageError):
    """Raised when a unit id or template name is not in the unit library."""


class ConnectivityError(MdmForgeError):
    """Raised when every probe candidate failed at the network layer."""

    exit_code = EXIT_CONNECTION_ERROR


class AuthenticationError(MdmForgeError):
    """Raised when every credential-exchange candidate was rejected."""

    exit_code = EXIT_AUTH_FAILURE


class AuthenticationInProgressError(AuthenticationError):
    """Raised when ``connect()`` is called for an account that is already connecting."""


class SessionExpired(AuthenticationError):
    """Raised on a 401 from an authenticated call after a session was established.

    Callers should re-authenticate rather than re-validate or resubmit
    blindly.
    """

    exit_code = EXIT_SESSION_EXPIRED


class StorageError(MdmForgeError):
    """Raised when the credential store cannot read or write its files."""


class ValidationError(MdmForgeError):
    """Raised when a document has blocking validation errors.

    Args:
        message: Human-readable summary.
        validation_pass: The pass (structural, unit, compliance) that
            produced the first error.
        issues: All blocking issues, in pass order.
    """

    exit_code = EXIT_VALIDATION_FAILED

    def __init__(
        self,
        message: str,
        validation_pass: Optional[ValidationPass] = None,
        issues: Sequence[ValidationIssue] = (),
    ):
        super().__init__(message)
        self.validation_pass = validation_pass
        self.issues = list(issues)


class SubmissionError(MdmForgeError):
    """Raised when the remote platform rejects an upload (other than a name conflict).

    Args:
        message: Human-readable error description.
        status_code: HTTP status of the rejecting response, when one exists.
    """

    exit_code = EXIT_SUBMISSION_FAILURE

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigError(MdmForgeError):
    """Raised for configuration problems (invalid JSON, bad credential sources, missing accounts)."""

    exit_code = EXIT_GENERIC_FAILURE
