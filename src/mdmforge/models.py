"""Canonical Pydantic models shared across all mdmforge modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into four groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`NetworkConfig`, :class:`ProfileDefaults`, :class:`GlobalConfig`.

**Account and session models** -- owned by the credential store and the
authentication engine:
    :class:`Account`, :class:`TokenRecord`, :class:`Session`,
    :class:`ConnectionState`, :class:`ProbeAttempt`, :class:`ProbeResult`.

**Composition models** -- the building blocks of a configuration profile:
    the :data:`SettingValue` tagged union, :class:`ConfigUnit`,
    :class:`PrivacyAuthorization`, :class:`TargetApp`, :class:`Template`,
    :class:`SerializedUnit`, and :class:`Document`.

**Result models** -- pure outputs of validation and submission:
    :class:`ValidationIssue`, :class:`ComplianceIssue`, :class:`Suggestion`,
    :class:`ValidationResult`, :class:`SubmissionResult`.

Secrets are always typed as :class:`pydantic.SecretStr` so that they never
render in ``repr()``, logs, or ``model_dump()`` output.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr, computed_field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_instance_id() -> str:
    """Return a fresh upper-case UUID string, the form used for ``PayloadUUID``."""
    return str(uuid.uuid4()).upper()


# --- Configuration ---


class NetworkConfig(BaseModel):
    """Timeouts and TLS settings for every remote call."""

    probe_timeout: float = Field(default=10.0, description="Per-attempt probe timeout in seconds")
    exchange_timeout: float = Field(default=30.0, description="Token exchange timeout in seconds")
    submit_timeout: float = Field(default=30.0, description="Profile upload timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates")


class ProfileDefaults(BaseModel):
    """Defaults applied to newly composed profiles.

    These are process-wide preferences. They are injected explicitly into
    the composer and exporter rather than read from global state.
    """

    identifier_prefix: str = "com.yourcompany"
    profile_name: str = "New Profile"
    organization: str = ""
    scope: str = Field(default="System", description="PayloadScope: System or User")
    platform: str = Field(default="macOS", description="Platform profiles are validated against")
    export_format: Literal["xml", "binary"] = "xml"
    export_directory: str = "~/Downloads"


class GlobalConfig(BaseModel):
    """Top-level user configuration stored in ``<config_dir>/config.json``.

    Example::

        {
            "default_account": "6f1c...",
            "network": {"probe_timeout": 10, "verify_ssl": true},
            "profile_defaults": {"identifier_prefix": "com.acme"}
        }
    """

    default_account: Optional[str] = Field(
        default=None, description="Account id used when none is given"
    )
    auto_select_single_account: bool = True
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    profile_defaults: ProfileDefaults = Field(default_factory=ProfileDefaults)


# --- Accounts and sessions ---


class Account(BaseModel):
    """Non-secret metadata for one remote management server login.

    Secrets (tokens, passwords) are never stored on this model; the
    credential store keeps them in a separate file keyed by :attr:`id`.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    vendor: str = Field(default="Jamf Pro", description="Remote platform vendor")
    server_url: str = Field(description="Normalised https:// server address")
    display_name: str
    username: Optional[str] = Field(
        default=None, description="Username for basic auth (not secret)"
    )
    last_used: Optional[datetime] = None
    is_default: bool = False


class TokenRecord(BaseModel):
    """A bearer token and its expiry as held by the credential store."""

    token: SecretStr
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Return ``True`` once *now* has reached :attr:`expires_at`."""
        now = now or _utcnow()
        return _as_utc(now) >= _as_utc(self.expires_at)


class Session(BaseModel):
    """An authenticated, time-bounded bearer credential for one account."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    server_url: str
    token: SecretStr
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or _utcnow()
        return _as_utc(now) >= _as_utc(self.expires_at)

    def authorization_header(self) -> dict[str, str]:
        """Return the ``Authorization`` header for this session."""
        return {"Authorization": f"Bearer {self.token.get_secret_value()}"}


class ConnectionState(str, enum.Enum):
    """Per-account authentication state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class ProbeAttempt(BaseModel):
    """Outcome of probing a single candidate path."""

    endpoint: str
    status_code: Optional[int] = None
    error: Optional[str] = None


class ProbeResult(BaseModel):
    """Reachability verdict for a server.

    ``status_code`` is the status of the first answering endpoint, kept so
    that "reachable but rejecting" (401/403) can be told apart from a clean
    200.
    """

    server_url: str
    reachable: bool
    endpoint: Optional[str] = None
    status_code: Optional[int] = None
    attempts: list[ProbeAttempt] = Field(default_factory=list)


# --- Setting values ---


class BoolSetting(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["bool"] = "bool"
    value: bool


class IntSetting(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["int"] = "int"
    value: int


class FloatSetting(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["float"] = "float"
    value: float


class StringSetting(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["string"] = "string"
    value: str


class StringListSetting(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["string_list"] = "string_list"
    value: tuple[str, ...]


SettingValue = Annotated[
    Union[BoolSetting, IntSetting, FloatSetting, StringSetting, StringListSetting],
    Field(discriminator="kind"),
]
"""A single unit setting: ``bool | int | float | str | list[str]``."""


def setting_value(raw: Any) -> SettingValue:
    """Wrap a plain Python value in the matching :data:`SettingValue` variant.

    Args:
        raw: A ``bool``, ``int``, ``float``, ``str``, or a list/tuple of
            ``str``. Existing setting models are returned unchanged.

    Returns:
        The tagged setting value.

    Raises:
        TypeError: If *raw* is none of the supported types.
    """
    if isinstance(raw, (BoolSetting, IntSetting, FloatSetting, StringSetting, StringListSetting)):
        return raw
    # bool is a subclass of int, so it must be checked first
    if isinstance(raw, bool):
        return BoolSetting(value=raw)
    if isinstance(raw, int):
        return IntSetting(value=raw)
    if isinstance(raw, float):
        return FloatSetting(value=raw)
    if isinstance(raw, str):
        return StringSetting(value=raw)
    if isinstance(raw, (list, tuple)) and all(isinstance(item, str) for item in raw):
        return StringListSetting(value=tuple(raw))
    raise TypeError(
        f"Unsupported setting value of type {type(raw).__name__}; "
        "expected bool, int, float, str, or a list of str"
    )


def plain_value(value: SettingValue) -> Any:
    """Unwrap a :data:`SettingValue` into a property-list compatible value."""
    if isinstance(value, StringListSetting):
        return list(value.value)
    return value.value


# --- Configuration units ---


class ConfigUnit(BaseModel):
    """One configuration block ("payload") within a profile.

    ``id`` names the kind of unit (``"wifi"``, ``"pppc"``) and is what
    :meth:`~mdmforge.profile.composer.ProfileComposer.add_unit` is
    idempotent on. ``uuid`` is the stable instance id that becomes the
    unit's ``PayloadUUID``.
    """

    id: str
    name: str
    description: str = ""
    platforms: list[str] = Field(default_factory=lambda: ["macOS"])
    category: str = ""
    payload_type: Optional[str] = Field(
        default=None, description="PayloadType; defaults to com.apple.<id>"
    )
    settings: dict[str, SettingValue] = Field(default_factory=dict)
    enabled: bool = True
    uuid: str = Field(default_factory=new_instance_id)

    def resolved_payload_type(self) -> str:
        return self.payload_type or f"com.apple.{self.id}"


class IdentifierType(str, enum.Enum):
    """How a privacy authorization identifies its target application."""

    BUNDLE_ID = "bundleID"
    PATH = "path"
    CODE_REQUIREMENT = "codeRequirement"


class ScreenCaptureType(str, enum.Enum):
    ALL = "All"
    WINDOW_ONLY = "WindowOnly"


class PrivacyAuthorization(BaseModel):
    """A per-application allow/deny rule for one privacy-protected service.

    Example::

        PrivacyAuthorization(
            service_id="Camera",
            identifier="us.zoom.xos",
            allowed=True,
            comment="Video calls",
        )
    """

    service_id: str = Field(description="Privacy service, e.g. SystemPolicyAllFiles")
    identifier: str = Field(default="", description="Bundle id, path, or code requirement")
    identifier_type: IdentifierType = IdentifierType.BUNDLE_ID
    allowed: bool = True
    user_override: bool = Field(
        default=False, description="Let standard users change the decision"
    )
    comment: Optional[str] = None
    code_requirement: Optional[str] = None
    receiver_identifier: Optional[str] = Field(
        default=None, description="AppleEvents receiver (AppleEvents only)"
    )
    receiver_identifier_type: IdentifierType = IdentifierType.BUNDLE_ID
    screen_capture_type: Optional[ScreenCaptureType] = Field(
        default=None, description="Capture scope (ScreenCapture only)"
    )


class TargetApp(BaseModel):
    """The application a template's privacy services are granted to."""

    identifier: str
    identifier_type: IdentifierType = IdentifierType.BUNDLE_ID
    code_requirement: Optional[str] = None
    name: Optional[str] = None


class Template(BaseModel):
    """A named preset that prescribes the complete unit set of a profile."""

    name: str
    description: str = ""
    unit_ids: list[str] = Field(default_factory=list)
    privacy_services: list[str] = Field(
        default_factory=list,
        description="Services granted to the target app when the template is applied",
    )


# --- Documents ---


class SerializedUnit(BaseModel):
    """A unit as it appears inside a built :class:`Document`.

    Freezing is shallow: ``settings`` stays a plain ``dict`` because
    :mod:`plistlib` only encodes real dicts. Each
    :meth:`~mdmforge.profile.composer.ProfileComposer.build` creates fresh
    settings, so editing them never reaches the composer or later builds.
    """

    model_config = ConfigDict(frozen=True)

    unit_id: str
    payload_type: str
    identifier: str
    uuid: str
    display_name: str
    description: str = ""
    version: int = 1
    enabled: bool = True
    platforms: tuple[str, ...] = ()
    settings: dict[str, Any] = Field(default_factory=dict)


class Document(BaseModel):
    """An immutable, fully composed configuration profile snapshot."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    identifier: str
    organization: str = ""
    scope: str = "System"
    uuid: str
    units: tuple[SerializedUnit, ...] = ()


# --- Validation ---


class ValidationPass(str, enum.Enum):
    STRUCTURAL = "structural"
    UNIT = "unit"
    COMPLIANCE = "compliance"


class Severity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ValidationIssue(BaseModel):
    """A single error or warning found by a validation pass."""

    model_config = ConfigDict(frozen=True)

    validation_pass: ValidationPass
    code: str
    message: str
    unit_identifier: Optional[str] = None
    severity: Severity = Severity.HIGH


class ComplianceIssue(BaseModel):
    """A policy finding that does not block export."""

    model_config = ConfigDict(frozen=True)

    code: str
    requirement: str
    message: str
    severity: Literal["minor", "moderate", "critical"] = "moderate"
    remediation: str = ""
    unit_identifier: Optional[str] = None


class Suggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    unit_identifier: Optional[str] = None


class ValidationResult(BaseModel):
    """Outcome of :func:`~mdmforge.profile.validator.validate`."""

    model_config = ConfigDict(frozen=True)

    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()
    compliance_issues: tuple[ComplianceIssue, ...] = ()
    suggestions: tuple[Suggestion, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_valid(self) -> bool:
        return not self.errors


# --- Submission ---


class SubmissionOutcome(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"


class SubmissionResult(BaseModel):
    """What :meth:`~mdmforge.submission.pipeline.SubmissionPipeline.submit` did remotely."""

    outcome: SubmissionOutcome
    name: str
    status_code: int
    remote_id: Optional[int] = None
