"""Auth commands -- probe servers and manage sessions.

Provides the ``mdmforge auth`` sub-command group. ``login`` always probes
the server before sending credentials, so an unreachable host is reported
as a connection problem and never as a wrong password.

Typical workflow::

    mdmforge auth probe acme.jamfcloud.com
    mdmforge auth login --account Acme --client-id abcd1234 --secret-source env:JAMF_SECRET
    mdmforge auth status
"""

from __future__ import annotations

from typing import Optional

import typer

from mdmforge.exceptions import MdmForgeError
from mdmforge.exit_codes import EXIT_CONNECTION_ERROR
from mdmforge.output import error, format_response, get_output, info, success, suggest, warning


auth_app = typer.Typer(no_args_is_help=True)


@auth_app.command("probe")
def auth_probe(
    server: Optional[str] = typer.Argument(None, help="Server address. Defaults to the active account's."),
    account_ref: Optional[str] = typer.Option(None, "--account", "-a", help="Account id or name."),
) -> None:
    """Check whether a server answers, without sending credentials.

    Exits with code 6 when no candidate endpoint answered.

    Example::

        mdmforge auth probe acme.jamfcloud.com
    """
    from mdmforge.auth.credential_store import CredentialStore
    from mdmforge.auth.prober import ConnectivityProber
    from mdmforge.commands.common import resolve_account, run
    from mdmforge.config import load_global_config

    try:
        if server is None:
            config, account = resolve_account(CredentialStore(), account_ref)
            server = account.server_url
        else:
            config = load_global_config()
        prober = ConnectivityProber(
            timeout=config.network.probe_timeout,
            verify_ssl=config.network.verify_ssl,
        )
        result = run(prober.probe(server))
    except MdmForgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    get_output().print_table(
        ["Endpoint", "Status", "Error"],
        [
            [a.endpoint, str(a.status_code) if a.status_code is not None else "-", a.error or ""]
            for a in result.attempts
        ],
        title=result.server_url,
    )
    if not result.reachable:
        error(f"{result.server_url} is unreachable.")
        suggest("Check the address, VPN and firewall settings.")
        raise typer.Exit(code=EXIT_CONNECTION_ERROR)
    success(f"{result.server_url} is reachable.")


@auth_app.command("login")
def auth_login(
    account_ref: Optional[str] = typer.Option(None, "--account", "-a", help="Account id or name."),
    client_id: Optional[str] = typer.Option(None, "--client-id", help="API client id (client-credential sign-in)."),
    secret_source: str = typer.Option(
        "prompt",
        "--secret-source",
        help="Client secret or password source: env:VAR, file:/path, prompt.",
    ),
    username: Optional[str] = typer.Option(
        None, "--username", "-u", help="Username (basic sign-in). Defaults to the account's."
    ),
) -> None:
    """Sign in and store a session.

    With ``--client-id`` the API client flow is used; otherwise a username
    (from ``--username`` or the account) and password are exchanged.

    Example::

        mdmforge auth login --client-id abcd1234 --secret-source env:JAMF_SECRET
        mdmforge auth login --account Acme --username admin
    """
    from pydantic import SecretStr

    from mdmforge.auth.base import BasicCredentials, ClientCredentials
    from mdmforge.auth.credential_store import CredentialStore
    from mdmforge.auth.urls import validate_client_id, validate_client_secret, validate_username
    from mdmforge.commands.common import build_engine, resolve_account, run
    from mdmforge.config import resolve_credential
    from mdmforge.exceptions import InvalidUsageError

    store = CredentialStore()
    try:
        config, account = resolve_account(store, account_ref)
        if client_id:
            validate_client_id(client_id)
            secret = resolve_credential(secret_source, "Client secret")
            validate_client_secret(secret)
            credentials = ClientCredentials(client_id=client_id, client_secret=SecretStr(secret))
        else:
            user = username or account.username
            if not user:
                raise InvalidUsageError("Give --client-id for API client sign-in, or --username for basic sign-in.")
            validate_username(user)
            password = resolve_credential(secret_source, f"Password for {user}")
            credentials = BasicCredentials(username=user, password=SecretStr(password))

        engine = build_engine(config, store)
        info(f"Connecting to {account.server_url}...")
        session = run(engine.connect(account, credentials))
    except MdmForgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    success(
        f'Signed in to "{account.display_name}". Session valid until '
        f"{session.expires_at.strftime('%Y-%m-%d %H:%M %Z')}."
    )


@auth_app.command("logout")
def auth_logout(
    account_ref: Optional[str] = typer.Option(None, "--account", "-a", help="Account id or name."),
) -> None:
    """Discard the stored session for an account.

    Example::

        mdmforge auth logout --account Acme
    """
    from mdmforge.auth.credential_store import CredentialStore
    from mdmforge.commands.common import build_engine, resolve_account

    store = CredentialStore()
    try:
        config, account = resolve_account(store, account_ref)
        build_engine(config, store).logout(account.id)
    except MdmForgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    success(f'Signed out of "{account.display_name}".')


@auth_app.command("status")
def auth_status(
    account_ref: Optional[str] = typer.Option(None, "--account", "-a", help="Account id or name."),
) -> None:
    """Show whether the account has a live session.

    Example::

        mdmforge auth status
        mdmforge --json auth status
    """
    from mdmforge.auth.credential_store import CredentialStore
    from mdmforge.commands.common import resolve_account

    store = CredentialStore()
    try:
        _, account = resolve_account(store, account_ref)
    except MdmForgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    record = store.retrieve_token(account.id)
    format_response(
        {
            "account": account.display_name,
            "id": account.id,
            "server": account.server_url,
            "signed_in": record is not None,
            "expires_at": record.expires_at.isoformat() if record else None,
        }
    )
    if record is None:
        suggest(f"Sign in: mdmforge auth login --account {account.id}")


@auth_app.command("diagnose")
def auth_diagnose(
    account_ref: Optional[str] = typer.Option(None, "--account", "-a", help="Account id or name."),
) -> None:
    """Report which API resources the current session can reach.

    Useful when uploads fail with 403 or 404.

    Example::

        mdmforge auth diagnose --account Acme
    """
    from mdmforge.auth.credential_store import CredentialStore
    from mdmforge.auth.diagnostics import diagnose
    from mdmforge.commands.common import build_engine, require_session, resolve_account, run

    store = CredentialStore()
    try:
        config, account = resolve_account(store, account_ref)
        session = require_session(build_engine(config, store), account)
        checks = run(
            diagnose(
                session,
                timeout=config.network.probe_timeout,
                verify_ssl=config.network.verify_ssl,
            )
        )
    except MdmForgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    get_output().print_table(
        ["Endpoint", "Status", "OK", "Detail"],
        [
            [
                c.endpoint,
                str(c.status_code) if c.status_code is not None else "-",
                "yes" if c.ok else "no",
                c.detail,
            ]
            for c in checks
        ],
        title=f"Diagnostics for {account.display_name}",
    )
    if not all(c.ok for c in checks):
        warning("Some endpoints are not accessible; check the API role's privileges.")
