"""The ``mdmforge`` command.

The root Typer app only owns the global flags (output format, colour,
verbosity, ``--force``); the work happens in the ``account``, ``auth`` and
``profile`` groups under :mod:`mdmforge.commands`, attached by
:func:`register_commands`.

:func:`main` is the console-script entry point. Errors derived from
:class:`~mdmforge.exceptions.MdmForgeError` become a one-line message and
their exit code; anything else is written, sanitized, to
``<data dir>/logs/crash-*.log``.
"""

from __future__ import annotations

import sys
import traceback
from datetime import datetime
from pathlib import Path

import typer

from mdmforge import __version__
from mdmforge.exit_codes import EXIT_GENERIC_FAILURE

EXIT_INTERRUPTED = 130

app = typer.Typer(
    name="mdmforge",
    help="Build, validate and submit device-management configuration profiles.",
    no_args_is_help=True,
    add_completion=True,
    rich_markup_mode="rich",
)


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"mdmforge {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", callback=_print_version, is_eager=True, help="Show version and exit."
    ),
    json_output: bool = typer.Option(False, "--json", help="Print results as JSON."),
    plain_output: bool = typer.Option(False, "--plain", help="Print results as tab-separated text."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colour."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print results, warnings and errors."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug messages and library logs."),
    force: bool = typer.Option(False, "--force", "-f", help="Answer yes to every confirmation."),
) -> None:
    """Install the output manager and logging for this invocation.

    ``--force`` is stored in ``ctx.obj`` for commands that ask before
    deleting or overwriting.
    """
    from mdmforge.output import OutputFormat, OutputManager, configure_logging, set_output

    if json_output and plain_output:
        raise typer.BadParameter("--json and --plain cannot be combined.")

    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        fmt = OutputFormat.AUTO

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    configure_logging(output)

    ctx.ensure_object(dict)
    ctx.obj.update(force=force, verbose=verbose)


def register_commands(target: typer.Typer = app) -> typer.Typer:
    """Add the ``account``, ``auth`` and ``profile`` groups to *target*."""
    from mdmforge.commands.account import account_app
    from mdmforge.commands.auth import auth_app
    from mdmforge.commands.profile import profile_app

    target.add_typer(account_app, name="account", help="Manage server accounts.")
    target.add_typer(auth_app, name="auth", help="Probe servers and manage sessions.")
    target.add_typer(profile_app, name="profile", help="Compose, validate, export and submit profiles.")
    return target


def _write_crash_log() -> Path:
    """Save the active traceback with token-like strings redacted."""
    from mdmforge.config import get_data_dir
    from mdmforge.exceptions import sanitize_for_logging

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / f"crash-{datetime.now():%Y%m%d-%H%M%S}.log"
    lines = (sanitize_for_logging(line, limit=1000) for line in traceback.format_exc().splitlines())
    log_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return log_path


def main() -> None:
    """Console-script entry point. Always ends in :class:`SystemExit`."""
    try:
        register_commands()
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as exc:
        from mdmforge.exceptions import MdmForgeError
        from mdmforge.output import error

        if isinstance(exc, MdmForgeError):
            error(str(exc))
            sys.exit(exc.exit_code)
        error(f"Unexpected error. Details were saved to {_write_crash_log()}")
        sys.exit(EXIT_GENERIC_FAILURE)
