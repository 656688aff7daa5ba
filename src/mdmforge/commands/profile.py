"""Profile commands -- compose, validate, export and submit profiles.

Provides the ``mdmforge profile`` sub-command group. Profiles are
described by YAML or JSON definition files (see
:mod:`mdmforge.profile.definition`); every command rebuilds the document
from the file, so nothing is cached between runs.

Typical workflow::

    mdmforge profile init zoom.yaml --name Zoom --target us.zoom.xos
    mdmforge profile validate zoom.yaml
    mdmforge profile export zoom.yaml --output ~/Downloads
    mdmforge profile submit zoom.yaml --account Acme
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

import typer

from mdmforge.exceptions import MdmForgeError
from mdmforge.exit_codes import EXIT_VALIDATION_FAILED
from mdmforge.output import (
    OutputFormat,
    error,
    format_response,
    get_output,
    info,
    print_data,
    success,
    suggest,
    warning,
)

if TYPE_CHECKING:
    from mdmforge.models import GlobalConfig, ValidationResult
    from mdmforge.profile.composer import ProfileComposer


profile_app = typer.Typer(no_args_is_help=True)


def _compose(path: Path) -> tuple[GlobalConfig, ProfileComposer]:
    """Load global config, user templates and the definition at *path*."""
    from mdmforge.commands.common import custom_templates
    from mdmforge.config import load_global_config
    from mdmforge.profile.definition import compose, load_definition

    config = load_global_config()
    definition = load_definition(path)
    composer = compose(definition, config.profile_defaults, custom_templates())
    return config, composer


def _report(result: ValidationResult) -> None:
    if get_output().format == OutputFormat.JSON:
        format_response(result.model_dump(mode="json"))
        return
    for issue in result.errors:
        error(f"{issue.message} ({issue.validation_pass.value} check)")
    for issue in result.warnings:
        warning(issue.message)
    for item in result.compliance_issues:
        warning(f"{item.requirement} ({item.severity}): {item.message}")
        if item.remediation:
            suggest(item.remediation)
    for suggestion in result.suggestions:
        suggest(suggestion.message)


@profile_app.command("templates")
def profile_templates() -> None:
    """List built-in and custom templates.

    Custom templates are YAML or JSON files in the ``templates`` folder of
    the config directory.

    Example::

        mdmforge profile templates
    """
    from mdmforge.commands.common import custom_templates
    from mdmforge.profile.catalog import all_templates, friendly_service_name

    try:
        templates = all_templates(custom_templates())
    except MdmForgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    get_output().print_table(
        ["Name", "Units", "Privacy services", "Description"],
        [
            [
                t.name,
                ", ".join(t.unit_ids),
                ", ".join(friendly_service_name(s) for s in t.privacy_services),
                t.description,
            ]
            for t in templates
        ],
        title="Templates",
    )


@profile_app.command("services")
def profile_services() -> None:
    """List the privacy services an authorization can target.

    Example::

        mdmforge profile services
    """
    from mdmforge.profile.catalog import privacy_services

    get_output().print_table(
        ["Service", "Name", "Category", "Allow enforced", "User override"],
        [
            [
                s.id,
                s.name,
                s.category,
                "yes" if s.allow_enforced else "deny only",
                "yes" if s.user_override_supported else "no",
            ]
            for s in privacy_services()
        ],
        title="Privacy services",
    )


@profile_app.command("units")
def profile_units() -> None:
    """List the configuration units a profile can contain.

    Example::

        mdmforge profile units
    """
    from mdmforge.profile.catalog import unit_library

    get_output().print_table(
        ["ID", "Name", "Platforms", "Payload type", "Required settings"],
        [
            [
                u.id,
                u.name + (" (deprecated)" if u.deprecated else ""),
                ", ".join(u.platforms),
                u.payload_type,
                ", ".join(u.required_settings),
            ]
            for u in unit_library()
        ],
        title="Configuration units",
    )


@profile_app.command("init")
def profile_init(
    ctx: typer.Context,
    path: Path = typer.Argument(help="Definition file to create (.yaml or .json)."),
    name: Optional[str] = typer.Option(None, "--name", help="Profile name."),
    template: Optional[str] = typer.Option(None, "--template", "-t", help="Template to start from."),
    target: Optional[str] = typer.Option(None, "--target", help="Bundle id of the target application."),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file."),
) -> None:
    """Create a starter definition file.

    Example::

        mdmforge profile init zoom.yaml --name Zoom --template "Antivirus Setup" --target us.zoom.xos
    """
    import json

    from mdmforge.commands.common import custom_templates
    from mdmforge.config import atomic_write, load_global_config
    from mdmforge.profile.catalog import get_template
    from mdmforge.profile.definition import dump_definition, starter_definition

    force = force or bool((ctx.obj or {}).get("force"))
    if path.exists() and not force:
        error(f"{path} already exists. Use --force to overwrite.")
        raise typer.Exit(code=2)

    try:
        config = load_global_config()
        if template:
            template = get_template(template, custom_templates()).name
        definition = starter_definition(config.profile_defaults, name=name, template=template, target=target)
        if path.suffix.lower() == ".json":
            data = definition.model_dump(mode="json", exclude_none=True, exclude_defaults=True)
            text = json.dumps(data, indent=2) + "\n"
        else:
            text = dump_definition(definition)
        atomic_write(path, text)
    except MdmForgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    except OSError as exc:
        error(f"Cannot write {path}: {exc.strerror or exc}")
        raise typer.Exit(code=1) from None

    success(f"Created {path}.")
    suggest(f"Edit it, then run: mdmforge profile validate {path}")


@profile_app.command("validate")
def profile_validate(
    path: Path = typer.Argument(help="Definition file."),
    platform: Optional[str] = typer.Option(None, "--platform", help="Target platform (macOS or iOS)."),
) -> None:
    """Validate a profile. Exits with code 9 when it has blocking errors.

    Example::

        mdmforge profile validate zoom.yaml
    """
    from mdmforge.profile.validator import validate

    try:
        config, composer = _compose(path)
        result = validate(composer.build(), platform=platform or config.profile_defaults.platform)
    except MdmForgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    _report(result)
    if not result.is_valid:
        raise typer.Exit(code=EXIT_VALIDATION_FAILED)
    success(
        f'"{composer.name}" is valid ({len(result.warnings)} warning(s), '
        f"{len(result.compliance_issues)} compliance issue(s))."
    )


@profile_app.command("export")
def profile_export(
    path: Path = typer.Argument(help="Definition file."),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Directory or .mobileconfig file. Defaults to the export directory."
    ),
    fmt: Optional[str] = typer.Option(None, "--format", help="Property list format: xml or binary."),
) -> None:
    """Validate and write a ``.mobileconfig`` file.

    Example::

        mdmforge profile export zoom.yaml --output ~/Desktop --format binary
    """
    from mdmforge.profile.serializer import export
    from mdmforge.profile.validator import ensure_valid, validate

    try:
        config, composer = _compose(path)
        defaults = config.profile_defaults
        document = composer.build()
        result = validate(document, platform=defaults.platform)
        _report(result)
        ensure_valid(result)
        written = export(
            document,
            output if output is not None else Path(defaults.export_directory),
            fmt or defaults.export_format,
        )
    except MdmForgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    success(f"Exported {written}.")


@profile_app.command("submit")
def profile_submit(
    path: Path = typer.Argument(help="Definition file."),
    account_ref: Optional[str] = typer.Option(None, "--account", "-a", help="Account id or name."),
) -> None:
    """Validate and upload a profile, creating it or updating it by name.

    Exits with code 8 when the session has expired; sign in again and
    resubmit.

    Example::

        mdmforge profile submit zoom.yaml --account Acme
    """
    from mdmforge.auth.credential_store import CredentialStore
    from mdmforge.commands.common import (
        build_engine,
        build_pipeline,
        require_session,
        resolve_account,
        run,
    )
    from mdmforge.exceptions import SessionExpired
    from mdmforge.profile.validator import validate

    store = CredentialStore()
    try:
        _, composer = _compose(path)
        config, account = resolve_account(store, account_ref)
        session = require_session(build_engine(config, store), account)
        document = composer.build()
        # JSON mode prints only the submission result on stdout.
        if get_output().format != OutputFormat.JSON:
            _report(validate(document, platform=config.profile_defaults.platform))
        info(f'Uploading "{document.name}" to {account.server_url}...')
        result = run(build_pipeline(config).submit(document, session))
    except SessionExpired as exc:
        error(str(exc))
        suggest(f"Sign in again: mdmforge auth login --account {account_ref or '<account>'}")
        raise typer.Exit(code=exc.exit_code) from None
    except MdmForgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if get_output().format == OutputFormat.JSON:
        format_response(result.model_dump(mode="json"))
    else:
        remote = f" (id {result.remote_id})" if result.remote_id is not None else ""
        success(f'Profile "{result.name}" {result.outcome.value}{remote}.')


@profile_app.command("summary")
def profile_summary(
    path: Path = typer.Argument(help="Definition file."),
) -> None:
    """Describe a profile in plain language.

    Example::

        mdmforge profile summary zoom.yaml
    """
    try:
        _, composer = _compose(path)
    except MdmForgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    print_data(composer.human_summary())
