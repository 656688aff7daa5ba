"""Static knowledge about configuration units, privacy services, and templates.

Three catalogs live here:

* **Unit library** -- every configuration unit the composer can add, with
  its payload type, supported platforms, required settings, and default
  settings. See :func:`get_unit_definition`.
* **Privacy services** -- the privacy-protected services a privacy
  authorization can target, with the OS rules that the validator checks
  (which services honour "allow", which accept a user override). See
  :func:`get_service`.
* **Templates** -- built-in presets plus user templates loaded from YAML or
  JSON files in :func:`~mdmforge.config.get_templates_dir`. See
  :func:`get_template`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from mdmforge.exceptions import ConfigError, UnknownUnitError
from mdmforge.models import ConfigUnit, Template, setting_value

logger = logging.getLogger(__name__)

PRIVACY_UNIT_ID = "pppc"
LEGACY_PRIVACY_UNIT_ID = "tcc"


# --- Unit library ---


class UnitDefinition(BaseModel):
    """Catalog entry describing one kind of configuration unit."""

    id: str
    name: str
    description: str = ""
    platforms: list[str] = Field(default_factory=lambda: ["macOS"])
    category: str = ""
    payload_type: str
    required_settings: list[str] = Field(default_factory=list)
    default_settings: dict[str, Any] = Field(default_factory=dict)
    deprecated: Optional[str] = Field(
        default=None, description="Why the unit should no longer be used"
    )

    def instantiate(self) -> ConfigUnit:
        """Return a fresh :class:`~mdmforge.models.ConfigUnit` with default settings."""
        return ConfigUnit(
            id=self.id,
            name=self.name,
            description=self.description,
            platforms=list(self.platforms),
            category=self.category,
            payload_type=self.payload_type,
            settings={key: setting_value(value) for key, value in self.default_settings.items()},
        )


_UNIT_LIBRARY: tuple[UnitDefinition, ...] = (
    UnitDefinition(
        id="filevault2",
        name="FileVault 2",
        description="Full-disk encryption with an escrowed recovery key.",
        category="Security",
        payload_type="com.apple.MCX.FileVault2",
        required_settings=["Enable"],
        default_settings={"Enable": "On", "Defer": True, "UseRecoveryKey": True, "ShowRecoveryKey": False},
    ),
    UnitDefinition(
        id="gatekeeper",
        name="Gatekeeper",
        description="Restrict which applications may launch.",
        category="Security",
        payload_type="com.apple.systempolicy.control",
        required_settings=["EnableAssessment"],
        default_settings={"EnableAssessment": True, "AllowIdentifiedDevelopers": True},
    ),
    UnitDefinition(
        id="firewall",
        name="Firewall",
        description="Application firewall and stealth mode.",
        category="Security",
        payload_type="com.apple.security.firewall",
        required_settings=["EnableFirewall"],
        default_settings={"EnableFirewall": True, "BlockAllIncoming": False, "EnableStealthMode": True},
    ),
    UnitDefinition(
        id=PRIVACY_UNIT_ID,
        name="Privacy Preferences Policy Control",
        description="Grant or deny applications access to privacy-protected services.",
        category="Security",
        payload_type="com.apple.TCC.configuration-profile-policy",
    ),
    UnitDefinition(
        id=LEGACY_PRIVACY_UNIT_ID,
        name="Legacy TCC",
        description="Pre-Mojave privacy database payload.",
        category="Security",
        payload_type="com.apple.TCC",
        deprecated="Superseded by Privacy Preferences Policy Control (pppc)",
    ),
    UnitDefinition(
        id="restrictions",
        name="Restrictions",
        description="Restrict device features and applications.",
        platforms=["macOS", "iOS"],
        category="Security",
        payload_type="com.apple.applicationaccess",
    ),
    UnitDefinition(
        id="passcode",
        name="Passcode",
        description="Password complexity and rotation rules.",
        platforms=["macOS", "iOS"],
        category="Security",
        payload_type="com.apple.mobiledevice.passwordpolicy",
        default_settings={"minLength": 8, "requireAlphanumeric": True},
    ),
    UnitDefinition(
        id="wifi",
        name="Wi-Fi",
        description="Join a wireless network.",
        platforms=["macOS", "iOS"],
        category="Network",
        payload_type="com.apple.wifi.managed",
        required_settings=["SSID_STR", "EncryptionType"],
        default_settings={"AutoJoin": True, "EncryptionType": "WPA2", "HIDDEN_NETWORK": False},
    ),
    UnitDefinition(
        id="vpn",
        name="VPN",
        description="Virtual private network connection.",
        platforms=["macOS", "iOS"],
        category="Network",
        payload_type="com.apple.vpn.managed",
        required_settings=["UserDefinedName", "VPNType"],
    ),
    UnitDefinition(
        id="proxy",
        name="Global HTTP Proxy",
        description="Route HTTP traffic through a proxy.",
        platforms=["iOS"],
        category="Network",
        payload_type="com.apple.proxy.http.global",
        required_settings=["ProxyType"],
    ),
    UnitDefinition(
        id="cellular",
        name="Cellular",
        description="Cellular data APN settings.",
        platforms=["iOS"],
        category="Network",
        payload_type="com.apple.cellular",
    ),
    UnitDefinition(
        id="webClip",
        name="Web Clip",
        description="Home-screen shortcut to a web page.",
        platforms=["iOS"],
        category="Apps",
        payload_type="com.apple.webClip.managed",
        required_settings=["URL", "Label"],
    ),
    UnitDefinition(
        id="loginWindow",
        name="Login Window",
        description="Login window appearance and behaviour.",
        category="System",
        payload_type="com.apple.loginwindow",
        default_settings={"SHOWFULLNAME": False},
    ),
    UnitDefinition(
        id="softwareUpdate",
        name="Software Update",
        description="Automatic update checks and downloads.",
        category="System",
        payload_type="com.apple.SoftwareUpdate",
        default_settings={"AutomaticCheckEnabled": True, "AutomaticDownload": True},
    ),
    UnitDefinition(
        id="systemExtensions",
        name="System Extensions",
        description="Approve system extensions by team identifier.",
        category="Security",
        payload_type="com.apple.system-extension-policy",
        required_settings=["AllowedTeamIdentifiers"],
    ),
    UnitDefinition(
        id="kernelExtensions",
        name="Kernel Extensions",
        description="Approve legacy kernel extensions.",
        category="Security",
        payload_type="com.apple.syspolicy.kernel-extension-policy",
        required_settings=["AllowedTeamIdentifiers"],
        deprecated="Kernel extensions are deprecated on macOS; use system extensions",
    ),
)

_UNITS_BY_ID: dict[str, UnitDefinition] = {unit.id: unit for unit in _UNIT_LIBRARY}


def unit_library() -> list[UnitDefinition]:
    """Return every catalog unit in display order."""
    return list(_UNIT_LIBRARY)


def find_unit_definition(unit_id: str) -> Optional[UnitDefinition]:
    return _UNITS_BY_ID.get(unit_id)


def get_unit_definition(unit_id: str) -> UnitDefinition:
    """Look up a unit by id.

    Raises:
        UnknownUnitError: If *unit_id* is not in the library.
    """
    unit = _UNITS_BY_ID.get(unit_id)
    if unit is None:
        available = ", ".join(sorted(_UNITS_BY_ID))
        raise UnknownUnitError(f"Unknown unit '{unit_id}'. Available units: {available}")
    return unit


# --- Privacy services ---


class PrivacyService(BaseModel):
    """A privacy-protected service that an authorization can target."""

    id: str
    name: str
    description: str = ""
    category: str
    allow_enforced: bool = Field(
        default=True,
        description="False when the OS only honours Deny for this service",
    )
    user_override_supported: bool = False


_PRIVACY_SERVICES: tuple[PrivacyService, ...] = (
    PrivacyService(id="SystemPolicyAllFiles", name="Full Disk Access", category="System Policy",
                   description="Read and write all user and system files."),
    PrivacyService(id="SystemPolicyDownloadsFolder", name="Downloads Folder", category="System Policy"),
    PrivacyService(id="SystemPolicyDesktopFolder", name="Desktop Folder", category="System Policy"),
    PrivacyService(id="SystemPolicyDocumentsFolder", name="Documents Folder", category="System Policy"),
    PrivacyService(id="SystemPolicyRemovableVolumes", name="Removable Volumes", category="System Policy"),
    PrivacyService(id="SystemPolicyNetworkVolumes", name="Network Volumes", category="System Policy"),
    PrivacyService(id="SystemPolicySysAdminFiles", name="Administrator Files", category="System Policy"),
    PrivacyService(id="Accessibility", name="Accessibility", category="Accessibility",
                   description="Control the computer through accessibility APIs."),
    PrivacyService(id="PostEvent", name="Synthetic Input", category="Accessibility"),
    PrivacyService(id="ListenEvent", name="Input Monitoring", category="Input Monitoring",
                   allow_enforced=False, user_override_supported=True),
    PrivacyService(id="Camera", name="Camera", category="Media", allow_enforced=False),
    PrivacyService(id="Microphone", name="Microphone", category="Media", allow_enforced=False),
    PrivacyService(id="ScreenCapture", name="Screen Recording", category="Media",
                   allow_enforced=False, user_override_supported=True),
    PrivacyService(id="AppleEvents", name="Automation", category="Automation",
                   description="Send Apple Events to another application."),
    PrivacyService(id="AddressBook", name="Contacts", category="Personal Data"),
    PrivacyService(id="Calendar", name="Calendars", category="Personal Data"),
    PrivacyService(id="Photos", name="Photos", category="Personal Data"),
)

_SERVICES_BY_ID: dict[str, PrivacyService] = {s.id: s for s in _PRIVACY_SERVICES}


def privacy_services() -> list[PrivacyService]:
    return list(_PRIVACY_SERVICES)


def get_service(service_id: str) -> Optional[PrivacyService]:
    return _SERVICES_BY_ID.get(service_id)


def friendly_service_name(service_id: str) -> str:
    """Return the name users know a service by ("Full Disk Access"), or the id itself."""
    service = _SERVICES_BY_ID.get(service_id)
    return service.name if service else service_id


CATEGORY_SUGGESTIONS: dict[str, tuple[str, ...]] = {
    "Security EDR": (
        "Accessibility",
        "SystemPolicyAllFiles",
        "ScreenCapture",
        "AppleEvents",
        "Microphone",
        "Camera",
    ),
    "Browser": ("ScreenCapture", "AppleEvents", "SystemPolicyDownloadsFolder"),
    "Communications": ("Camera", "Microphone", "AppleEvents"),
    "General": (),
}
"""Privacy services typically needed by each kind of application."""


# --- Templates ---


_BUILTIN_TEMPLATES: tuple[Template, ...] = (
    Template(
        name="Security Baseline",
        description="Encryption, firewall, Gatekeeper and restrictions, plus privacy access for a security agent.",
        unit_ids=["restrictions", "firewall", "filevault2", "gatekeeper", PRIVACY_UNIT_ID],
        privacy_services=["SystemPolicyAllFiles", "Accessibility", "ListenEvent"],
    ),
    Template(
        name="Antivirus Setup",
        description="Privacy access required by endpoint protection software.",
        unit_ids=[PRIVACY_UNIT_ID],
        privacy_services=["SystemPolicyAllFiles", "ScreenCapture", "Accessibility"],
    ),
    Template(
        name="Development Tools",
        description="Privacy access for IDEs and automation tooling.",
        unit_ids=[PRIVACY_UNIT_ID],
        privacy_services=["SystemPolicyAllFiles", "Accessibility", "AppleEvents"],
    ),
    Template(
        name="Network Configuration",
        description="Wi-Fi and VPN.",
        unit_ids=["wifi", "vpn"],
    ),
    Template(
        name="Device Lockdown",
        description="Passcode policy, restrictions, login window and update settings.",
        unit_ids=["passcode", "restrictions", "loginWindow", "softwareUpdate"],
    ),
)


def builtin_templates() -> list[Template]:
    return list(_BUILTIN_TEMPLATES)


def load_templates(directory: Path) -> list[Template]:
    """Load user templates from ``*.yaml``, ``*.yml`` and ``*.json`` files.

    Each file holds one template object or a list of them. Unknown unit ids
    are rejected here rather than when the template is applied.

    Raises:
        ConfigError: If a file cannot be parsed or describes an invalid
            template.
    """
    templates: list[Template] = []
    if not directory.is_dir():
        return templates
    for path in sorted(directory.iterdir()):
        if path.suffix.lower() not in (".yaml", ".yml", ".json"):
            continue
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise ConfigError(f"Cannot read template file {path}: {exc}") from exc
        entries = raw if isinstance(raw, list) else [raw]
        for entry in entries:
            try:
                template = Template.model_validate(entry)
            except PydanticValidationError as exc:
                raise ConfigError(f"Invalid template in {path}: {exc}") from exc
            for unit_id in template.unit_ids:
                if unit_id not in _UNITS_BY_ID:
                    raise ConfigError(
                        f"Template '{template.name}' in {path} uses unknown unit '{unit_id}'"
                    )
            if template.privacy_services and PRIVACY_UNIT_ID not in template.unit_ids:
                raise ConfigError(
                    f"Template '{template.name}' in {path} lists privacy services "
                    f"but not the '{PRIVACY_UNIT_ID}' unit"
                )
            templates.append(template)
        logger.debug("Loaded templates from %s", path.name)
    return templates


def all_templates(extra: Iterable[Template] = ()) -> list[Template]:
    """Built-in templates followed by *extra*; a later template replaces an earlier one of the same name."""
    merged: dict[str, Template] = {}
    for template in (*_BUILTIN_TEMPLATES, *extra):
        merged[template.name.lower()] = template
    return list(merged.values())


def get_template(name: str, extra: Iterable[Template] = ()) -> Template:
    """Find a template by case-insensitive name.

    Raises:
        UnknownUnitError: If no template has that name.
    """
    templates = all_templates(extra)
    for template in templates:
        if template.name.lower() == name.lower():
            return template
    available = ", ".join(t.name for t in templates)
    raise UnknownUnitError(f"Unknown template '{name}'. Available templates: {available}")
