"""Three-pass validation of a built :class:`~mdmforge.models.Document`.

Passes run in order, and a pass only runs when every earlier pass produced
no errors:

1. **Structural** -- top-level fields, identifier syntax, unit identity.
2. **Unit** -- required settings for each unit, plus the bespoke rules of
   privacy authorizations (target identifier, AppleEvents receiver,
   ScreenCapture scope).
3. **Compliance** -- cross-cutting policy: disallowed combinations and units
   that are deprecated or unsupported on the declared platform.

Errors block export and submission; warnings, compliance issues, and
suggestions are advisory. :func:`validate` is a pure function of its
arguments.
"""

from __future__ import annotations

import re
import uuid
from typing import Any, Optional

from mdmforge.exceptions import ValidationError
from mdmforge.models import (
    ComplianceIssue,
    Document,
    IdentifierType,
    SerializedUnit,
    Severity,
    Suggestion,
    ValidationIssue,
    ValidationPass,
    ValidationResult,
)
from mdmforge.profile.catalog import (
    LEGACY_PRIVACY_UNIT_ID,
    PRIVACY_UNIT_ID,
    find_unit_definition,
    friendly_service_name,
    get_service,
)

MAX_NAME_LENGTH = 100
VALID_SCOPES = ("System", "User")
AUTHORIZATION_VALUES = ("Allow", "Deny", "AllowStandardUserToSetSystemService")
CAPTURE_SCOPES = ("All", "WindowOnly")

_INVALID_NAME_CHARS = set('<>:"/\\|?*')
_IDENTIFIER_COMPONENT = re.compile(r"^[A-Za-z][A-Za-z0-9\-]*$")
_IDENTIFIER_TYPES = tuple(t.value for t in IdentifierType)


def is_reverse_dns(identifier: str) -> bool:
    """Return ``True`` for identifiers like ``com.acme.profile``.

    At least two dot-separated components; each starts with a letter and
    contains only letters, digits and ``-``.
    """
    components = identifier.split(".")
    if len(components) < 2:
        return False
    return all(_IDENTIFIER_COMPONENT.match(component) for component in components)


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return True


class _Collector:
    """Accumulates findings for one validation run."""

    def __init__(self) -> None:
        self.errors: list[ValidationIssue] = []
        self.warnings: list[ValidationIssue] = []
        self.compliance: list[ComplianceIssue] = []
        self.suggestions: list[Suggestion] = []

    def error(self, validation_pass: ValidationPass, code: str, message: str, unit: Optional[str] = None) -> None:
        self.errors.append(
            ValidationIssue(validation_pass=validation_pass, code=code, message=message, unit_identifier=unit)
        )

    def warn(
        self,
        validation_pass: ValidationPass,
        code: str,
        message: str,
        unit: Optional[str] = None,
        severity: Severity = Severity.MEDIUM,
    ) -> None:
        self.warnings.append(
            ValidationIssue(
                validation_pass=validation_pass,
                code=code,
                message=message,
                unit_identifier=unit,
                severity=severity,
            )
        )

    def result(self) -> ValidationResult:
        return ValidationResult(
            errors=tuple(self.errors),
            warnings=tuple(self.warnings),
            compliance_issues=tuple(self.compliance),
            suggestions=tuple(self.suggestions),
        )


# --- Pass 1: structural ---


def _structural_pass(document: Document, out: _Collector) -> None:
    p = ValidationPass.STRUCTURAL
    name = document.name.strip()
    if not name:
        out.error(p, "empty_name", "Profile name is required")
    else:
        if len(name) > MAX_NAME_LENGTH:
            out.error(p, "name_too_long", f"Profile name exceeds {MAX_NAME_LENGTH} characters")
        if _INVALID_NAME_CHARS.intersection(name):
            out.error(p, "invalid_name", 'Profile name cannot contain any of <>:"/\\|?*')

    if not document.identifier.strip():
        out.error(p, "empty_identifier", "Profile identifier is required")
    elif not is_reverse_dns(document.identifier):
        out.error(
            p,
            "invalid_identifier",
            f"Profile identifier '{document.identifier}' is not reverse-DNS (e.g. com.company.profile)",
        )

    if not _is_uuid(document.uuid):
        out.error(p, "invalid_uuid", "Profile UUID is malformed")

    if document.scope not in VALID_SCOPES:
        out.error(p, "invalid_scope", f"Scope must be one of {', '.join(VALID_SCOPES)}")

    if not document.units:
        out.error(p, "no_units", "Profile must contain at least one configuration unit")

    seen_identifiers: set[str] = set()
    seen_uuids: set[str] = set()
    for unit in document.units:
        if unit.identifier in seen_identifiers:
            out.error(p, "duplicate_unit_identifier", f"Duplicate unit identifier '{unit.identifier}'", unit.identifier)
        seen_identifiers.add(unit.identifier)
        if not _is_uuid(unit.uuid):
            out.error(p, "invalid_instance_id", f"Unit '{unit.display_name}' has a malformed UUID", unit.identifier)
        elif unit.uuid.upper() in seen_uuids:
            out.error(p, "duplicate_instance_id", f"Unit '{unit.display_name}' reuses UUID {unit.uuid}", unit.identifier)
        seen_uuids.add(unit.uuid.upper())

    if not document.description.strip():
        out.warn(p, "missing_description", "Profile has no description", severity=Severity.LOW)
    if not document.organization.strip():
        out.warn(p, "missing_organization", "Profile has no organization", severity=Severity.LOW)


# --- Pass 2: unit-level ---


def _unit_pass(document: Document, out: _Collector) -> None:
    p = ValidationPass.UNIT
    for unit in document.units:
        if not unit.enabled:
            out.warn(p, "unit_disabled", f"'{unit.display_name}' is disabled and will not apply", unit.identifier, Severity.LOW)

        definition = find_unit_definition(unit.unit_id)
        if definition is None:
            out.warn(p, "unknown_unit_type", f"'{unit.display_name}' is not a known unit type", unit.identifier)
        else:
            for key in definition.required_settings:
                value = unit.settings.get(key)
                if value is None or (isinstance(value, str) and not value.strip()) or value == []:
                    out.error(p, "missing_setting", f"'{unit.display_name}' requires setting '{key}'", unit.identifier)

        if unit.unit_id == PRIVACY_UNIT_ID:
            _check_privacy_unit(unit, out)


def _check_privacy_unit(unit: SerializedUnit, out: _Collector) -> None:
    p = ValidationPass.UNIT
    services = unit.settings.get("Services")
    if not isinstance(services, dict) or not services:
        out.error(p, "no_privacy_entries", "Privacy unit has no authorizations", unit.identifier)
        return

    for service_id, entries in services.items():
        label = friendly_service_name(service_id)
        if get_service(service_id) is None:
            out.warn(p, "unknown_privacy_service", f"'{service_id}' is not a known privacy service", unit.identifier)
        if not isinstance(entries, list) or not entries:
            out.error(p, "empty_privacy_service", f"{label} has no entries", unit.identifier)
            continue
        if len(entries) > 1:
            out.error(p, "duplicate_privacy_service", f"{label} has more than one entry", unit.identifier)
        for entry in entries:
            _check_privacy_entry(service_id, label, entry, unit.identifier, out)


def _check_privacy_entry(service_id: str, label: str, entry: Any, unit_identifier: str, out: _Collector) -> None:
    p = ValidationPass.UNIT
    if not isinstance(entry, dict):
        out.error(p, "invalid_privacy_entry", f"{label} entry is not a dictionary", unit_identifier)
        return

    identifier = str(entry.get("Identifier") or "").strip()
    if not identifier:
        out.error(p, "missing_target_identifier", f"{label} entry needs a target identifier", unit_identifier)

    identifier_type = entry.get("IdentifierType")
    if identifier_type not in _IDENTIFIER_TYPES:
        out.error(p, "invalid_identifier_type", f"{label} entry has invalid identifier type {identifier_type!r}", unit_identifier)

    if entry.get("Authorization") not in AUTHORIZATION_VALUES:
        out.error(p, "invalid_authorization", f"{label} entry has no valid authorization value", unit_identifier)

    if service_id == "AppleEvents" and not str(entry.get("AEReceiverIdentifier") or "").strip():
        out.error(p, "missing_receiver_identifier", "Automation entry needs a receiver identifier", unit_identifier)

    if service_id == "ScreenCapture" and entry.get("ScreenCaptureType") not in CAPTURE_SCOPES:
        out.error(
            p,
            "missing_capture_scope",
            f"Screen Recording entry needs a capture scope ({' or '.join(CAPTURE_SCOPES)})",
            unit_identifier,
        )

    if not entry.get("CodeRequirement"):
        if identifier_type == IdentifierType.CODE_REQUIREMENT.value:
            out.error(p, "missing_code_requirement", f"{label} entry identifies by code requirement but has none", unit_identifier)
        elif identifier:
            out.suggestions.append(
                Suggestion(
                    code="add_code_requirement",
                    message=f"Add a code requirement for {identifier} ({label}) so the grant is tied to the signed binary",
                    unit_identifier=unit_identifier,
                )
            )


# --- Pass 3: compliance ---


def _compliance_pass(document: Document, platform: str, out: _Collector) -> None:
    p = ValidationPass.COMPLIANCE
    unit_ids = {unit.unit_id for unit in document.units}

    if PRIVACY_UNIT_ID in unit_ids and LEGACY_PRIVACY_UNIT_ID in unit_ids:
        out.error(
            p,
            "conflicting_privacy_units",
            "Privacy Preferences Policy Control and Legacy TCC cannot be combined in one profile",
        )

    for unit in document.units:
        if unit.platforms and platform not in unit.platforms:
            out.warn(p, "unsupported_on_platform", f"'{unit.display_name}' is not supported on {platform}", unit.identifier)
            out.compliance.append(
                ComplianceIssue(
                    code="unsupported_on_platform",
                    requirement="Platform Support",
                    message=f"'{unit.display_name}' only applies to {', '.join(unit.platforms)}",
                    severity="critical",
                    remediation=f"Remove the unit or target {unit.platforms[0]}",
                    unit_identifier=unit.identifier,
                )
            )

        definition = find_unit_definition(unit.unit_id)
        if definition is not None and definition.deprecated:
            out.warn(p, "deprecated_unit", f"'{unit.display_name}' is deprecated: {definition.deprecated}", unit.identifier)
            out.compliance.append(
                ComplianceIssue(
                    code="deprecated_unit",
                    requirement="Apple Requirements",
                    message=f"'{unit.display_name}' is deprecated on {platform}",
                    severity="moderate",
                    remediation=definition.deprecated,
                    unit_identifier=unit.identifier,
                )
            )

        if unit.unit_id == PRIVACY_UNIT_ID:
            if document.scope != "System":
                out.error(
                    p,
                    "privacy_requires_system_scope",
                    "Privacy authorizations only apply to System-scoped profiles",
                    unit.identifier,
                )
            _privacy_compliance(unit, out)


def _privacy_compliance(unit: SerializedUnit, out: _Collector) -> None:
    p = ValidationPass.COMPLIANCE
    services = unit.settings.get("Services") or {}
    for service_id, entries in services.items():
        service = get_service(service_id)
        if service is None:
            continue
        for entry in entries:
            authorization = entry.get("Authorization")
            if authorization == "AllowStandardUserToSetSystemService" and not service.user_override_supported:
                out.error(
                    p,
                    "user_override_unsupported",
                    f"{service.name} does not support letting standard users change the decision",
                    unit.identifier,
                )
            elif authorization == "Allow" and not service.allow_enforced:
                out.compliance.append(
                    ComplianceIssue(
                        code="allow_not_enforced",
                        requirement="Apple Requirements",
                        message=f"{service.name} can only be denied by policy; users will still be asked to allow {entry.get('Identifier')}",
                        severity="minor",
                        remediation="Leave the decision to the user, or deny access explicitly",
                        unit_identifier=unit.identifier,
                    )
                )


# --- Public API ---


def validate(document: Document, platform: str = "macOS") -> ValidationResult:
    """Validate *document* for deployment to *platform*.

    Args:
        document: A document produced by
            :meth:`~mdmforge.profile.composer.ProfileComposer.build`.
        platform: The platform the profile targets (``macOS`` or ``iOS``).

    Returns:
        The :class:`~mdmforge.models.ValidationResult`. Later passes are
        skipped when an earlier pass reports errors.
    """
    out = _Collector()
    _structural_pass(document, out)
    if out.errors:
        return out.result()
    _unit_pass(document, out)
    if out.errors:
        return out.result()
    _compliance_pass(document, platform, out)
    return out.result()


def ensure_valid(result: ValidationResult) -> ValidationResult:
    """Raise if *result* has blocking errors, otherwise return it unchanged.

    Raises:
        ValidationError: Tagged with the pass of the first error.
    """
    if result.is_valid:
        return result
    first = result.errors[0]
    count = len(result.errors)
    raise ValidationError(
        f"Profile has {count} blocking issue{'s' if count != 1 else ''} "
        f"({first.validation_pass.value}): {first.message}",
        validation_pass=first.validation_pass,
        issues=result.errors,
    )
