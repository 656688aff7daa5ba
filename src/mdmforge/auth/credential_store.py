"""Persistent account and secret storage.

Account metadata and secret material live in separate directories, both
keyed by the stable account id:

* ``<config_dir>/accounts/<id>.json`` -- a serialised
  :class:`~mdmforge.models.Account` (server, display name, default flag).
  Nothing in this file is secret.
* ``<data_dir>/credentials/<id>.json`` -- the bearer token and its expiry.
  Written atomically via :func:`~mdmforge.config.atomic_write` with
  ``0o600`` permissions so that secrets are never world-readable, even
  momentarily.

Read failures are logged (never with file content) and reported as "no
value", which callers treat as unauthenticated. Write failures raise
:class:`~mdmforge.exceptions.StorageError`.

See Also:
    :class:`~mdmforge.auth.engine.AuthenticationEngine` -- persists every
    session it creates here before returning it.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from pydantic import SecretStr

from mdmforge.config import atomic_write, get_accounts_dir, get_credentials_dir
from mdmforge.exceptions import StorageError
from mdmforge.models import Account, TokenRecord

logger = logging.getLogger(__name__)

_ACCOUNT_ID = re.compile(r"^[A-Za-z0-9_\-]{1,128}$")


def _check_id(account_id: str) -> str:
    if not _ACCOUNT_ID.match(account_id):
        raise StorageError(f"Invalid account id: {account_id!r}")
    return account_id


class CredentialStore:
    """Read/write account metadata and tokens on disk.

    Args:
        accounts_dir: Directory for metadata files. Defaults to
            :func:`~mdmforge.config.get_accounts_dir`.
        credentials_dir: Directory for secret files. Defaults to
            :func:`~mdmforge.config.get_credentials_dir`.

    Example::

        store = CredentialStore()
        store.store(Account(server_url="https://acme.example.com", display_name="Acme"))
        store.store_token(account.id, "tok123", expires_at)
        record = store.retrieve_token(account.id)
    """

    def __init__(
        self,
        accounts_dir: Optional[Path] = None,
        credentials_dir: Optional[Path] = None,
    ) -> None:
        self._accounts_dir = accounts_dir
        self._credentials_dir = credentials_dir

    @property
    def accounts_dir(self) -> Path:
        if self._accounts_dir is None:
            self._accounts_dir = get_accounts_dir()
        return self._accounts_dir

    @property
    def credentials_dir(self) -> Path:
        if self._credentials_dir is None:
            self._credentials_dir = get_credentials_dir()
        return self._credentials_dir

    def _metadata_path(self, account_id: str) -> Path:
        return self.accounts_dir / f"{_check_id(account_id)}.json"

    def _secret_path(self, account_id: str) -> Path:
        return self.credentials_dir / f"{_check_id(account_id)}.json"

    # ------------------------------------------------------------------ #
    # Account metadata
    # ------------------------------------------------------------------ #

    def store(self, account: Account) -> None:
        """Persist *account* metadata (never secrets).

        Raises:
            StorageError: If the metadata file cannot be written.
        """
        path = self._metadata_path(account.id)
        text = json.dumps(account.model_dump(mode="json"), indent=2) + "\n"
        try:
            atomic_write(path, text)
        except OSError as exc:
            logger.error("Could not save account %s: %s", account.id, exc.strerror)
            raise StorageError(f"Could not save account '{account.display_name}'") from exc

    def load_account(self, account_id: str) -> Optional[Account]:
        """Load one account, or ``None`` if it is missing or unreadable."""
        path = self._metadata_path(account_id)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return Account.model_validate(data)
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.warning(
                "Ignoring unreadable account file %s (%s)", path.name, type(exc).__name__
            )
            return None

    def list_accounts(self) -> list[Account]:
        """Return every readable account, sorted by display name."""
        accounts: list[Account] = []
        for path in sorted(self.accounts_dir.glob("*.json")):
            account = self.load_account(path.stem)
            if account is not None:
                accounts.append(account)
        return sorted(accounts, key=lambda a: a.display_name.lower())

    def touch(self, account_id: str, when: Optional[datetime] = None) -> Optional[Account]:
        """Record a successful authentication by updating ``last_used``.

        Returns:
            The updated account, or ``None`` if it does not exist.

        Raises:
            StorageError: If the metadata file cannot be rewritten.
        """
        account = self.load_account(account_id)
        if account is None:
            return None
        updated = account.model_copy(
            update={"last_used": when or datetime.now(timezone.utc)}
        )
        self.store(updated)
        return updated

    def set_default(self, account_id: str) -> Account:
        """Mark *account_id* as the default and clear the flag on all others.

        Raises:
            StorageError: If the account does not exist or a file cannot be
                written.
        """
        target = self.load_account(account_id)
        if target is None:
            raise StorageError(f"No stored account with id '{account_id}'")
        for account in self.list_accounts():
            should_be_default = account.id == account_id
            if account.is_default != should_be_default:
                self.store(account.model_copy(update={"is_default": should_be_default}))
        return target.model_copy(update={"is_default": True})

    def default_account(self) -> Optional[Account]:
        for account in self.list_accounts():
            if account.is_default:
                return account
        return None

    # ------------------------------------------------------------------ #
    # Secrets
    # ------------------------------------------------------------------ #

    def store_token(
        self,
        account_id: str,
        token: Union[str, SecretStr],
        expires_at: datetime,
    ) -> None:
        """Persist a bearer token for *account_id* with ``0o600`` permissions.

        Raises:
            StorageError: If the secret file cannot be written.
        """
        secret = token.get_secret_value() if isinstance(token, SecretStr) else token
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        payload = {
            "account_id": account_id,
            "token": secret,
            "expires_at": expires_at.isoformat(),
        }
        path = self._secret_path(account_id)
        try:
            atomic_write(path, json.dumps(payload, indent=2) + "\n", mode=0o600)
        except OSError as exc:
            logger.error("Could not save token for account %s: %s", account_id, exc.strerror)
            raise StorageError("Could not save the session token") from exc

    def retrieve_token(
        self,
        account_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[TokenRecord]:
        """Return the live token for *account_id*.

        Returns ``None`` when no token is stored, the file is unreadable, or
        the token has expired. An expired token is never returned, even
        though its raw value may still be on disk.
        """
        path = self._secret_path(account_id)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            record = TokenRecord(token=data["token"], expires_at=data["expires_at"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, OSError) as exc:
            logger.warning(
                "Ignoring unreadable token for account %s (%s)",
                account_id,
                type(exc).__name__,
            )
            return None
        if record.is_expired(now):
            logger.debug("Stored token for account %s has expired", account_id)
            return None
        return record

    def delete_token(self, account_id: str) -> None:
        """Remove the stored token for *account_id*, if any.

        Raises:
            StorageError: If the file exists but cannot be removed.
        """
        self._unlink(self._secret_path(account_id))

    def delete_account(self, account_id: str) -> bool:
        """Remove an account's metadata and its secret.

        Returns:
            ``True`` if anything was removed.

        Raises:
            StorageError: If a file exists but cannot be removed.
        """
        removed = False
        for path in (self._secret_path(account_id), self._metadata_path(account_id)):
            if path.exists():
                self._unlink(path)
                removed = True
        return removed

    def wipe_all(self) -> int:
        """Remove every account and secret file owned by mdmforge.

        Every file is attempted even when an earlier removal fails.

        Returns:
            The number of files removed.

        Raises:
            StorageError: If any file could not be removed.
        """
        removed = 0
        failed = 0
        for directory in (self.credentials_dir, self.accounts_dir):
            if not directory.is_dir():
                continue
            for path in directory.iterdir():
                if not path.is_file():
                    continue
                try:
                    path.unlink()
                    removed += 1
                except OSError as exc:
                    failed += 1
                    logger.error("Could not remove %s: %s", path.name, exc.strerror)
        if failed:
            raise StorageError(f"Could not remove {failed} stored file(s)")
        logger.info("Removed %d stored file(s)", removed)
        return removed

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Could not remove %s: %s", path.name, exc.strerror)
            raise StorageError(f"Could not remove {path.name}") from exc
