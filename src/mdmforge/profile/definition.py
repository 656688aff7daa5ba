"""Profile definition files.

A definition is a YAML (or JSON) description of a profile that the CLI
composes into a :class:`~mdmforge.models.Document`::

    name: Zoom
    identifier: com.acme.zoom
    organization: Acme
    target:
      identifier: us.zoom.xos
      code_requirement: identifier "us.zoom.xos" and anchor apple generic
    category: Communications
    units:
      - id: firewall
        settings:
          EnableFirewall: true
    privacy:
      - service_id: Camera
        allowed: false

``template`` is applied first (it replaces everything), then ``units``,
then ``category`` suggestions, then the explicit ``privacy`` entries, which
win over anything granted before them. Privacy entries without an
``identifier`` inherit the ``target``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from mdmforge.exceptions import ConfigError, InvalidUsageError
from mdmforge.models import PrivacyAuthorization, ProfileDefaults, TargetApp, Template
from mdmforge.profile.catalog import get_template
from mdmforge.profile.composer import ProfileComposer

logger = logging.getLogger(__name__)


class UnitSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    settings: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True


class ProfileDefinition(BaseModel):
    """On-disk description of a profile."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    identifier: Optional[str] = None
    description: str = ""
    organization: Optional[str] = None
    scope: Optional[str] = None
    template: Optional[str] = Field(default=None, description="Template applied before anything else")
    target: Optional[TargetApp] = Field(default=None, description="Application the privacy entries apply to")
    category: Optional[str] = Field(default=None, description="App category whose suggested services are granted")
    units: list[UnitSpec] = Field(default_factory=list)
    privacy: list[PrivacyAuthorization] = Field(default_factory=list)


def load_definition(path: Path) -> ProfileDefinition:
    """Read a definition file.

    Raises:
        ConfigError: If the file is missing, unparseable, or invalid.
    """
    try:
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read profile definition {path}: {exc.strerror or exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Profile definition {path} is not valid YAML/JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Profile definition {path} must contain a mapping")
    try:
        return ProfileDefinition.model_validate(raw)
    except PydanticValidationError as exc:
        raise ConfigError(f"Invalid profile definition {path}: {exc}") from exc


def dump_definition(definition: ProfileDefinition) -> str:
    """Render *definition* as YAML, omitting unset optional fields."""
    data = definition.model_dump(mode="json", exclude_none=True, exclude_defaults=True)
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)


def _with_target(entry: PrivacyAuthorization, target: Optional[TargetApp]) -> PrivacyAuthorization:
    if entry.identifier or target is None:
        return entry
    return entry.model_copy(
        update={
            "identifier": target.identifier,
            "identifier_type": target.identifier_type,
            "code_requirement": entry.code_requirement or target.code_requirement,
        }
    )


def compose(
    definition: ProfileDefinition,
    defaults: Optional[ProfileDefaults] = None,
    extra_templates: Iterable[Template] = (),
) -> ProfileComposer:
    """Build a composer from *definition*.

    Unit instance ids are derived from the profile identifier, so composing
    the same definition twice yields identical documents.

    Raises:
        UnknownUnitError: For an unknown template or unit id.
        InvalidUsageError: For a bad setting value, an unknown category, or
            a category without a target.
    """
    composer = ProfileComposer(
        name=definition.name,
        identifier=definition.identifier,
        description=definition.description,
        organization=definition.organization,
        scope=definition.scope,
        defaults=defaults,
        stable_ids=True,
    )

    if definition.template:
        composer.apply_template(get_template(definition.template, extra_templates), definition.target)

    for entry in definition.units:
        composer.add_unit(entry.id)
        for key, value in entry.settings.items():
            composer.set_unit_setting(entry.id, key, value)
        if not entry.enabled:
            composer.set_unit_enabled(entry.id, False)

    if definition.category:
        if definition.target is None:
            raise InvalidUsageError("A 'category' needs a 'target' application")
        composer.apply_category_suggestions(definition.category, definition.target)

    for entry in definition.privacy:
        composer.set_privacy_authorization(_with_target(entry, definition.target))

    logger.debug(
        "Composed '%s': %d units, %d privacy entries",
        composer.name,
        len(composer.units),
        len(composer.privacy_authorizations),
    )
    return composer


def starter_definition(
    defaults: Optional[ProfileDefaults] = None,
    name: Optional[str] = None,
    template: Optional[str] = None,
    target: Optional[str] = None,
) -> ProfileDefinition:
    """A minimal definition used by ``mdmforge profile init``."""
    defaults = defaults or ProfileDefaults()
    composer = ProfileComposer(name=name, defaults=defaults)
    return ProfileDefinition(
        name=composer.name,
        identifier=composer.identifier,
        organization=composer.organization or None,
        scope=composer.scope,
        template=template,
        target=TargetApp(identifier=target) if target else None,
    )
