"""Account commands -- manage the servers mdmforge can sign in to.

Provides the ``mdmforge account`` sub-command group. An account is the
non-secret description of one management server (address, display name,
optional username); tokens are only ever written by ``mdmforge auth
login``.

Typical workflow::

    mdmforge account add --server acme.jamfcloud.com --name Acme
    mdmforge account default Acme
    mdmforge account list
"""

from __future__ import annotations

from typing import Optional

import typer

from mdmforge.exceptions import MdmForgeError
from mdmforge.output import error, get_output, info, success, suggest, warning


account_app = typer.Typer(no_args_is_help=True)


@account_app.command("add")
def account_add(
    server: str = typer.Option(..., "--server", "-s", help="Server address, e.g. acme.jamfcloud.com."),
    name: Optional[str] = typer.Option(None, "--name", help="Display name. Defaults to the host name."),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Username for basic sign-in."),
    make_default: bool = typer.Option(False, "--default", help="Make this the default account."),
) -> None:
    """Add a server account.

    The address is normalised (scheme added, ``/api`` suffixes and trailing
    slashes removed) and must use HTTPS.

    Example::

        mdmforge account add --server acme.jamfcloud.com --name Acme --default
    """
    from mdmforge.auth.credential_store import CredentialStore
    from mdmforge.auth.urls import normalize_server_url, validate_server_url, validate_username
    from mdmforge.config import load_global_config, save_global_config
    from mdmforge.models import Account

    try:
        server_url = normalize_server_url(server)
        validate_server_url(server_url)
        if username:
            validate_username(username)
        account = Account(
            server_url=server_url,
            display_name=name or server_url.split("://", 1)[1],
            username=username,
        )
        store = CredentialStore()
        store.store(account)
        if make_default:
            store.set_default(account.id)
            config = load_global_config()
            config.default_account = account.id
            save_global_config(config)
    except MdmForgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    success(f'Added account "{account.display_name}" ({account.server_url}) with id {account.id}.')
    suggest(f"Sign in: mdmforge auth login --account {account.id}")


@account_app.command("list")
def account_list() -> None:
    """List configured accounts and whether each has a live session.

    Example::

        mdmforge account list
        mdmforge --json account list
    """
    from mdmforge.auth.credential_store import CredentialStore

    store = CredentialStore()
    accounts = store.list_accounts()
    if not accounts:
        info("No accounts configured.")
        suggest("Add one: mdmforge account add --server <url>")
        return

    rows = []
    for account in accounts:
        record = store.retrieve_token(account.id)
        rows.append(
            [
                account.id,
                account.display_name,
                account.server_url,
                account.last_used.strftime("%Y-%m-%d %H:%M") if account.last_used else "never",
                "yes" if account.is_default else "",
                "signed in" if record is not None else "signed out",
            ]
        )
    get_output().print_table(
        ["ID", "Name", "Server", "Last used", "Default", "Session"],
        rows,
        title="Accounts",
    )


@account_app.command("default")
def account_default(
    ref: str = typer.Argument(help="Account id or display name."),
) -> None:
    """Make an account the default for every command.

    Example::

        mdmforge account default Acme
    """
    from mdmforge.auth.credential_store import CredentialStore
    from mdmforge.commands.common import find_account
    from mdmforge.config import load_global_config, save_global_config

    try:
        store = CredentialStore()
        account = find_account(store.list_accounts(), ref)
        store.set_default(account.id)
        config = load_global_config()
        config.default_account = account.id
        save_global_config(config)
    except MdmForgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    success(f'"{account.display_name}" is now the default account.')


@account_app.command("remove")
def account_remove(
    ctx: typer.Context,
    ref: str = typer.Argument(help="Account id or display name."),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Remove an account together with its stored session.

    Example::

        mdmforge account remove Acme --force
    """
    from mdmforge.auth.credential_store import CredentialStore
    from mdmforge.commands.common import find_account
    from mdmforge.config import load_global_config, save_global_config

    store = CredentialStore()
    try:
        account = find_account(store.list_accounts(), ref)
    except MdmForgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    force = force or bool((ctx.obj or {}).get("force"))
    if not force and not typer.confirm(f'Remove account "{account.display_name}"?'):
        info("Cancelled.")
        raise typer.Exit()

    try:
        store.delete_account(account.id)
        config = load_global_config()
        if config.default_account == account.id:
            config.default_account = None
            save_global_config(config)
    except MdmForgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    success(f'Removed account "{account.display_name}".')


@account_app.command("wipe")
def account_wipe(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Delete every stored account and session.

    Example::

        mdmforge account wipe --force
    """
    from mdmforge.auth.credential_store import CredentialStore
    from mdmforge.config import load_global_config, save_global_config

    force = force or bool((ctx.obj or {}).get("force"))
    if not force and not typer.confirm("Delete ALL accounts and stored sessions?"):
        info("Cancelled.")
        raise typer.Exit()

    try:
        removed = CredentialStore().wipe_all()
        config = load_global_config()
        if config.default_account is not None:
            config.default_account = None
            save_global_config(config)
    except MdmForgeError as exc:
        error(str(exc))
        warning("Some files may remain; remove them manually.")
        raise typer.Exit(code=exc.exit_code) from None
    success(f"Removed {removed} stored file(s).")
