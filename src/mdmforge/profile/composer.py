"""Profile composer -- the mutable working set behind every document.

:class:`ProfileComposer` holds the profile's top-level fields, an ordered
list of :class:`~mdmforge.models.ConfigUnit` objects, and the privacy
authorizations that end up inside the privacy unit. All operations are
synchronous and in-memory; a composer has a single writer.

:meth:`ProfileComposer.build` turns the working set into an immutable
:class:`~mdmforge.models.Document`. Callers build a fresh document right
before every export or submission and never keep one around across edits.

Invariants:

* At most one unit per unit id; :meth:`~ProfileComposer.add_unit` is
  idempotent.
* At most one privacy authorization per service id; a later
  :meth:`~ProfileComposer.set_privacy_authorization` replaces the earlier
  entry.
* :meth:`~ProfileComposer.apply_template` replaces the unit set *and* the
  authorizations. Nothing from the previous state survives.
"""

from __future__ import annotations

import re
import uuid
from typing import Any, Optional, Union

from mdmforge.exceptions import InvalidUsageError, UnknownUnitError
from mdmforge.models import (
    ConfigUnit,
    Document,
    IdentifierType,
    PrivacyAuthorization,
    ProfileDefaults,
    ScreenCaptureType,
    SerializedUnit,
    TargetApp,
    Template,
    new_instance_id,
    plain_value,
    setting_value,
)
from mdmforge.profile.catalog import (
    CATEGORY_SUGGESTIONS,
    PRIVACY_UNIT_ID,
    friendly_service_name,
    get_unit_definition,
)

_SLUG = re.compile(r"[^a-z0-9]+")


def document_uuid(identifier: str) -> str:
    """Derive the profile's ``PayloadUUID`` from its identifier.

    Identical identifiers always produce the same UUID, so rebuilding an
    unchanged profile yields a byte-identical document.
    """
    return str(uuid.uuid5(uuid.NAMESPACE_DNS, identifier)).upper()


def unit_instance_id(identifier: str, unit_id: str) -> str:
    """Derive a stable instance id for *unit_id* inside profile *identifier*."""
    return str(uuid.uuid5(uuid.NAMESPACE_DNS, f"{identifier}.{unit_id}")).upper()


def _slug(name: str) -> str:
    return _SLUG.sub("-", name.lower()).strip("-") or "profile"


def authorization_value(entry: PrivacyAuthorization) -> str:
    """Map an entry to the ``Authorization`` string the OS expects.

    A user override is emitted even for services that do not support it;
    the compliance pass reports that combination.
    """
    if not entry.allowed:
        return "Deny"
    if entry.user_override:
        return "AllowStandardUserToSetSystemService"
    return "Allow"


def service_entry(entry: PrivacyAuthorization) -> dict[str, Any]:
    """Render one authorization as a ``Services`` list item."""
    item: dict[str, Any] = {
        "Identifier": entry.identifier,
        "IdentifierType": entry.identifier_type.value,
        "Authorization": authorization_value(entry),
    }
    if entry.code_requirement:
        item["CodeRequirement"] = entry.code_requirement
    if entry.receiver_identifier:
        item["AEReceiverIdentifier"] = entry.receiver_identifier
        item["AEReceiverIdentifierType"] = entry.receiver_identifier_type.value
    if entry.screen_capture_type is not None:
        item["ScreenCaptureType"] = entry.screen_capture_type.value
    if entry.comment:
        item["Comment"] = entry.comment
    return item


class ProfileComposer:
    """Assemble a configuration profile from units and privacy authorizations.

    Args:
        name: Profile display name. Defaults to
            ``defaults.profile_name``.
        identifier: Reverse-DNS profile identifier. Defaults to
            ``<defaults.identifier_prefix>.<slugified name>``.
        description: Free-text description.
        organization: Organization name. Defaults to
            ``defaults.organization``.
        scope: ``System`` or ``User``. Defaults to ``defaults.scope``.
        defaults: Injected profile defaults.
        stable_ids: Derive unit instance ids from the profile identifier
            instead of generating random ones, so rebuilding the same
            profile yields the same UUIDs.

    Example::

        composer = ProfileComposer(name="Zoom", identifier="com.acme.zoom")
        composer.set_privacy_authorization(
            PrivacyAuthorization(service_id="Camera", identifier="us.zoom.xos")
        )
        document = composer.build()
    """

    def __init__(
        self,
        name: Optional[str] = None,
        identifier: Optional[str] = None,
        description: str = "",
        organization: Optional[str] = None,
        scope: Optional[str] = None,
        defaults: Optional[ProfileDefaults] = None,
        stable_ids: bool = False,
    ) -> None:
        defaults = defaults or ProfileDefaults()
        self.name = name or defaults.profile_name
        self.identifier = identifier or f"{defaults.identifier_prefix}.{_slug(self.name)}"
        self.description = description
        self.organization = organization if organization is not None else defaults.organization
        self.scope = scope or defaults.scope
        self.stable_ids = stable_ids
        self._units: list[ConfigUnit] = []
        self._authorizations: list[PrivacyAuthorization] = []

    # ------------------------------------------------------------------ #
    # Units
    # ------------------------------------------------------------------ #

    @property
    def units(self) -> tuple[ConfigUnit, ...]:
        """Copies of the current units, in order."""
        return tuple(unit.model_copy(deep=True) for unit in self._units)

    def has_unit(self, unit_id: str) -> bool:
        return any(unit.id == unit_id for unit in self._units)

    def _find_unit(self, unit_id: str) -> ConfigUnit:
        for unit in self._units:
            if unit.id == unit_id:
                return unit
        raise UnknownUnitError(f"Profile has no '{unit_id}' unit")

    def add_unit(
        self,
        unit: Union[ConfigUnit, str],
        instance_id: Optional[str] = None,
    ) -> ConfigUnit:
        """Append a unit unless one with the same id is already present.

        Args:
            unit: A :class:`~mdmforge.models.ConfigUnit`, or a library unit
                id such as ``"wifi"``.
            instance_id: Instance id for the added copy. When omitted it is
                derived from the identifier with ``stable_ids``, or a fresh
                UUID otherwise.

        Returns:
            The unit now in the profile (the existing one, if the id was
            already present).

        Raises:
            UnknownUnitError: If a string id is not in the unit library.
        """
        if isinstance(unit, str):
            unit = get_unit_definition(unit).instantiate()
        for existing in self._units:
            if existing.id == unit.id:
                return existing.model_copy(deep=True)
        added = unit.model_copy(
            deep=True,
            update={"uuid": instance_id or self._new_instance_id(unit.id), "enabled": True},
        )
        self._units.append(added)
        return added.model_copy(deep=True)

    def _new_instance_id(self, unit_id: str) -> str:
        if self.stable_ids:
            return unit_instance_id(self.identifier, unit_id)
        return new_instance_id()

    def remove_unit(self, unit_id: str) -> bool:
        """Remove the unit with *unit_id*.

        Removing the privacy unit also drops every privacy authorization.

        Returns:
            ``True`` if a unit was removed.
        """
        before = len(self._units)
        self._units = [unit for unit in self._units if unit.id != unit_id]
        if unit_id == PRIVACY_UNIT_ID:
            self._authorizations = []
        return len(self._units) != before

    def set_unit_setting(self, unit_id: str, key: str, value: Any) -> None:
        """Set one setting on a unit already in the profile.

        Raises:
            UnknownUnitError: If the profile has no such unit.
            InvalidUsageError: If *value* is not a supported setting type.
        """
        unit = self._find_unit(unit_id)
        try:
            unit.settings[key] = setting_value(value)
        except TypeError as exc:
            raise InvalidUsageError(f"Setting '{key}' on '{unit_id}': {exc}") from exc

    def remove_unit_setting(self, unit_id: str, key: str) -> None:
        self._find_unit(unit_id).settings.pop(key, None)

    def set_unit_enabled(self, unit_id: str, enabled: bool) -> None:
        self._find_unit(unit_id).enabled = enabled

    # ------------------------------------------------------------------ #
    # Privacy authorizations
    # ------------------------------------------------------------------ #

    @property
    def privacy_authorizations(self) -> tuple[PrivacyAuthorization, ...]:
        return tuple(entry.model_copy() for entry in self._authorizations)

    def get_privacy_authorization(self, service_id: str) -> Optional[PrivacyAuthorization]:
        for entry in self._authorizations:
            if entry.service_id == service_id:
                return entry.model_copy()
        return None

    def _upsert(self, entry: PrivacyAuthorization) -> None:
        self._authorizations = [
            existing for existing in self._authorizations if existing.service_id != entry.service_id
        ]
        self._authorizations.append(entry.model_copy())

    def set_privacy_authorization(self, entry: PrivacyAuthorization) -> None:
        """Insert or replace the authorization for ``entry.service_id``.

        The replaced entry moves to the end of the list. The privacy unit is
        added to the profile if it is not already present.
        """
        self.add_unit(PRIVACY_UNIT_ID)
        self._upsert(entry)

    def remove_privacy_authorization(self, service_id: str) -> bool:
        before = len(self._authorizations)
        self._authorizations = [e for e in self._authorizations if e.service_id != service_id]
        return len(self._authorizations) != before

    def apply_category_suggestions(self, category: str, target: TargetApp) -> list[str]:
        """Grant *target* the services typically needed by apps of *category*.

        Services that already have an authorization are left untouched.

        Returns:
            The service ids that were added.

        Raises:
            InvalidUsageError: If *category* is unknown.
        """
        if category not in CATEGORY_SUGGESTIONS:
            available = ", ".join(CATEGORY_SUGGESTIONS)
            raise InvalidUsageError(f"Unknown app category '{category}'. Available: {available}")
        added: list[str] = []
        for service_id in CATEGORY_SUGGESTIONS[category]:
            if self.get_privacy_authorization(service_id) is None:
                self.set_privacy_authorization(_grant(service_id, target))
                added.append(service_id)
        return added

    # ------------------------------------------------------------------ #
    # Templates
    # ------------------------------------------------------------------ #

    def apply_template(self, template: Template, target: Optional[TargetApp] = None) -> None:
        """Replace every unit and every authorization with *template*'s.

        Args:
            template: The template to apply.
            target: Application granted the template's privacy services.
                Without a target only the units are applied.

        Raises:
            UnknownUnitError: If the template names a unit that is not in
                the library. The composer is left unchanged.
        """
        definitions = [get_unit_definition(unit_id) for unit_id in template.unit_ids]

        self._units = []
        self._authorizations = []
        for definition in definitions:
            self.add_unit(definition.instantiate())

        if target is not None and self.has_unit(PRIVACY_UNIT_ID):
            for service_id in template.privacy_services:
                self._upsert(_grant(service_id, target))

    # ------------------------------------------------------------------ #
    # Build
    # ------------------------------------------------------------------ #

    def build(self) -> Document:
        """Return an immutable snapshot of the current profile.

        Each unit's ``PayloadIdentifier`` is ``<profile identifier>.<unit
        id>``. The privacy unit receives a ``Services`` dictionary built
        from the current authorizations.
        """
        serialized: list[SerializedUnit] = []
        for unit in self._units:
            settings = {key: plain_value(value) for key, value in unit.settings.items()}
            if unit.id == PRIVACY_UNIT_ID:
                settings["Services"] = {
                    entry.service_id: [service_entry(entry)] for entry in self._authorizations
                }
            serialized.append(
                SerializedUnit(
                    unit_id=unit.id,
                    payload_type=unit.resolved_payload_type(),
                    identifier=f"{self.identifier}.{unit.id}",
                    uuid=unit.uuid,
                    display_name=unit.name,
                    description=unit.description,
                    enabled=unit.enabled,
                    platforms=tuple(unit.platforms),
                    settings=settings,
                )
            )
        return Document(
            name=self.name,
            description=self.description,
            identifier=self.identifier,
            organization=self.organization,
            scope=self.scope,
            uuid=document_uuid(self.identifier),
            units=tuple(serialized),
        )

    def human_summary(self) -> str:
        """Describe the profile in plain language."""
        lines = [f'Profile "{self.name}" ({self.identifier}), scope {self.scope}']
        if not self._units:
            lines.append("No configuration units.")
        else:
            names = [unit.name if unit.enabled else f"{unit.name} (disabled)" for unit in self._units]
            lines.append("Units: " + ", ".join(names))
        for entry in self._authorizations:
            verb = "Allow" if entry.allowed else "Deny"
            line = f"  {verb} {entry.identifier or '(no target)'} to use {friendly_service_name(entry.service_id)}"
            if entry.receiver_identifier:
                line += f" on {entry.receiver_identifier}"
            if entry.user_override:
                line += " (user may change)"
            lines.append(line)
        return "\n".join(lines)


def _grant(service_id: str, target: TargetApp) -> PrivacyAuthorization:
    """Build an "allow" entry for *target* with the per-service defaults.

    Automation entries name *target* as their own receiver; callers that
    need a different one replace the entry with
    :meth:`ProfileComposer.set_privacy_authorization`.
    """
    automation = service_id == "AppleEvents"
    return PrivacyAuthorization(
        service_id=service_id,
        identifier=target.identifier,
        identifier_type=target.identifier_type,
        code_requirement=target.code_requirement,
        allowed=True,
        screen_capture_type=ScreenCaptureType.ALL if service_id == "ScreenCapture" else None,
        receiver_identifier=target.identifier if automation else None,
        receiver_identifier_type=target.identifier_type if automation else IdentifierType.BUNDLE_ID,
    )
