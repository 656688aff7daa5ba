"""Tests for the profile composer."""

from __future__ import annotations

import pytest

from mdmforge.exceptions import InvalidUsageError, UnknownUnitError
from mdmforge.models import (
    ConfigUnit,
    IdentifierType,
    PrivacyAuthorization,
    ProfileDefaults,
    TargetApp,
    Template,
    setting_value,
)
from mdmforge.profile.catalog import get_template
from mdmforge.profile.composer import (
    ProfileComposer,
    authorization_value,
    document_uuid,
    service_entry,
    unit_instance_id,
)
from mdmforge.profile.validator import validate

ZOOM = TargetApp(identifier="us.zoom.xos", name="Zoom")


def _composer() -> ProfileComposer:
    return ProfileComposer(name="Test", identifier="com.acme.test")


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestDefaults:
    def test_defaults_fill_missing_fields(self) -> None:
        defaults = ProfileDefaults(identifier_prefix="com.acme", organization="Acme", scope="User")
        composer = ProfileComposer(name="Zoom Privacy", defaults=defaults)
        assert composer.identifier == "com.acme.zoom-privacy"
        assert composer.organization == "Acme"
        assert composer.scope == "User"

    def test_explicit_values_win(self) -> None:
        defaults = ProfileDefaults(organization="Acme")
        composer = ProfileComposer(name="X", identifier="org.example.x", organization="", defaults=defaults)
        assert composer.identifier == "org.example.x"
        assert composer.organization == ""

    def test_fallback_name(self) -> None:
        assert ProfileComposer().name == "New Profile"


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------


class TestUnits:
    def test_add_unit_is_idempotent(self) -> None:
        composer = _composer()
        first = composer.add_unit("wifi")
        second = composer.add_unit("wifi")
        assert len(composer.units) == 1
        assert first.uuid == second.uuid

    def test_add_unit_accepts_models(self) -> None:
        composer = _composer()
        unit = ConfigUnit(id="custom", name="Custom", settings={"A": setting_value(1)})
        added = composer.add_unit(unit, instance_id="FIXED-ID")
        assert added.uuid == "FIXED-ID"
        assert composer.build().units[0].payload_type == "com.apple.custom"

    def test_add_unknown_unit(self) -> None:
        with pytest.raises(UnknownUnitError):
            _composer().add_unit("teleporter")

    def test_returned_units_are_copies(self) -> None:
        composer = _composer()
        composer.add_unit("firewall")
        composer.units[0].settings.clear()
        assert composer.units[0].settings

    def test_stable_ids(self) -> None:
        composer = ProfileComposer(name="Test", identifier="com.acme.test", stable_ids=True)
        unit = composer.add_unit("wifi")
        assert unit.uuid == unit_instance_id("com.acme.test", "wifi")

    def test_random_ids_by_default(self) -> None:
        a, b = _composer(), _composer()
        assert a.add_unit("wifi").uuid != b.add_unit("wifi").uuid

    def test_remove_unit(self) -> None:
        composer = _composer()
        composer.add_unit("wifi")
        assert composer.remove_unit("wifi") is True
        assert composer.remove_unit("wifi") is False

    def test_settings(self) -> None:
        composer = _composer()
        composer.add_unit("wifi")
        composer.set_unit_setting("wifi", "SSID_STR", "Corp")
        composer.set_unit_setting("wifi", "DomainNames", ["a.example.com", "b.example.com"])
        composer.remove_unit_setting("wifi", "HIDDEN_NETWORK")
        settings = composer.build().units[0].settings
        assert settings["SSID_STR"] == "Corp"
        assert settings["DomainNames"] == ["a.example.com", "b.example.com"]
        assert "HIDDEN_NETWORK" not in settings

    def test_unsupported_setting_type(self) -> None:
        composer = _composer()
        composer.add_unit("wifi")
        with pytest.raises(InvalidUsageError, match="SSID_STR"):
            composer.set_unit_setting("wifi", "SSID_STR", {"nested": True})

    def test_setting_on_missing_unit(self) -> None:
        with pytest.raises(UnknownUnitError):
            _composer().set_unit_setting("wifi", "SSID_STR", "x")

    def test_disable_unit(self) -> None:
        composer = _composer()
        composer.add_unit("firewall")
        composer.set_unit_enabled("firewall", False)
        assert composer.build().units[0].enabled is False


# ---------------------------------------------------------------------------
# Privacy authorizations
# ---------------------------------------------------------------------------


class TestPrivacyAuthorizations:
    def test_set_adds_privacy_unit(self) -> None:
        composer = _composer()
        composer.set_privacy_authorization(PrivacyAuthorization(service_id="Camera", identifier="us.zoom.xos"))
        assert composer.has_unit("pppc")

    def test_one_entry_per_service(self) -> None:
        composer = _composer()
        composer.set_privacy_authorization(PrivacyAuthorization(service_id="Camera", identifier="a.b"))
        composer.set_privacy_authorization(PrivacyAuthorization(service_id="Microphone", identifier="a.b"))
        composer.set_privacy_authorization(
            PrivacyAuthorization(service_id="Camera", identifier="a.b", allowed=False)
        )
        entries = composer.privacy_authorizations
        assert [e.service_id for e in entries] == ["Microphone", "Camera"]
        assert composer.get_privacy_authorization("Camera").allowed is False

    def test_remove_privacy_unit_drops_entries(self) -> None:
        composer = _composer()
        composer.set_privacy_authorization(PrivacyAuthorization(service_id="Camera", identifier="a.b"))
        composer.remove_unit("pppc")
        assert composer.privacy_authorizations == ()

    def test_remove_authorization(self) -> None:
        composer = _composer()
        composer.set_privacy_authorization(PrivacyAuthorization(service_id="Camera", identifier="a.b"))
        assert composer.remove_privacy_authorization("Camera") is True
        assert composer.remove_privacy_authorization("Camera") is False

    def test_category_suggestions_skip_existing(self) -> None:
        composer = _composer()
        composer.set_privacy_authorization(
            PrivacyAuthorization(service_id="Camera", identifier="us.zoom.xos", allowed=False)
        )
        added = composer.apply_category_suggestions("Communications", ZOOM)
        assert added == ["Microphone", "AppleEvents"]
        assert composer.get_privacy_authorization("Camera").allowed is False

    def test_unknown_category(self) -> None:
        with pytest.raises(InvalidUsageError, match="Available"):
            _composer().apply_category_suggestions("Games", ZOOM)

    @pytest.mark.parametrize(
        "allowed, override, expected",
        [(True, False, "Allow"), (False, False, "Deny"), (False, True, "Deny"),
         (True, True, "AllowStandardUserToSetSystemService")],
    )
    def test_authorization_value(self, allowed: bool, override: bool, expected: str) -> None:
        entry = PrivacyAuthorization(service_id="ListenEvent", identifier="a.b", allowed=allowed,
                                     user_override=override)
        assert authorization_value(entry) == expected

    def test_service_entry_optional_keys(self) -> None:
        entry = PrivacyAuthorization(
            service_id="AppleEvents",
            identifier="/usr/local/bin/agent",
            identifier_type=IdentifierType.PATH,
            code_requirement='identifier "agent"',
            receiver_identifier="com.apple.finder",
            comment="Automation",
        )
        item = service_entry(entry)
        assert item == {
            "Identifier": "/usr/local/bin/agent",
            "IdentifierType": "path",
            "Authorization": "Allow",
            "CodeRequirement": 'identifier "agent"',
            "AEReceiverIdentifier": "com.apple.finder",
            "AEReceiverIdentifierType": "bundleID",
            "Comment": "Automation",
        }


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class TestTemplates:
    def test_template_replaces_everything(self) -> None:
        composer = _composer()
        composer.add_unit("wifi")
        composer.set_privacy_authorization(PrivacyAuthorization(service_id="Camera", identifier="a.b"))

        composer.apply_template(get_template("Security Baseline"), ZOOM)

        assert [u.id for u in composer.units] == ["restrictions", "firewall", "filevault2", "gatekeeper", "pppc"]
        assert [e.service_id for e in composer.privacy_authorizations] == [
            "SystemPolicyAllFiles",
            "Accessibility",
            "ListenEvent",
        ]
        assert all(e.identifier == "us.zoom.xos" for e in composer.privacy_authorizations)

    def test_template_without_target_applies_units_only(self) -> None:
        composer = _composer()
        composer.apply_template(get_template("Antivirus Setup"))
        assert [u.id for u in composer.units] == ["pppc"]
        assert composer.privacy_authorizations == ()

    def test_screen_capture_grant_gets_scope(self) -> None:
        composer = _composer()
        composer.apply_template(get_template("Antivirus Setup"), ZOOM)
        assert composer.get_privacy_authorization("ScreenCapture").screen_capture_type.value == "All"

    def test_automation_grant_names_target_as_receiver(self) -> None:
        composer = _composer()
        composer.apply_template(get_template("Development Tools"), ZOOM)
        entry = composer.get_privacy_authorization("AppleEvents")
        assert entry.receiver_identifier == "us.zoom.xos"
        assert entry.receiver_identifier_type == IdentifierType.BUNDLE_ID

    @pytest.mark.parametrize("template_name", ["Antivirus Setup", "Development Tools"])
    def test_privacy_templates_build_valid_documents(self, template_name: str) -> None:
        composer = _composer()
        composer.apply_template(get_template(template_name), ZOOM)
        assert validate(composer.build()).errors == ()

    @pytest.mark.parametrize("category", ["Security EDR", "Browser", "Communications"])
    def test_category_suggestions_build_valid_documents(self, category: str) -> None:
        composer = _composer()
        composer.apply_category_suggestions(category, ZOOM)
        assert validate(composer.build()).errors == ()

    def test_unknown_unit_leaves_composer_untouched(self) -> None:
        composer = _composer()
        composer.add_unit("wifi")
        with pytest.raises(UnknownUnitError):
            composer.apply_template(Template(name="Bad", unit_ids=["firewall", "teleporter"]))
        assert [u.id for u in composer.units] == ["wifi"]


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------


class TestBuild:
    def test_document_fields(self) -> None:
        composer = ProfileComposer(name="Zoom", identifier="com.acme.zoom", description="Camera", organization="Acme")
        composer.set_privacy_authorization(PrivacyAuthorization(service_id="Camera", identifier="us.zoom.xos"))
        document = composer.build()
        assert document.uuid == document_uuid("com.acme.zoom")
        unit = document.units[0]
        assert unit.identifier == "com.acme.zoom.pppc"
        assert unit.payload_type == "com.apple.TCC.configuration-profile-policy"
        assert unit.settings["Services"]["Camera"][0]["Authorization"] == "Allow"

    def test_document_is_a_snapshot(self) -> None:
        composer = _composer()
        composer.add_unit("wifi")
        document = composer.build()
        composer.add_unit("vpn")
        assert len(document.units) == 1

    def test_document_settings_are_not_shared(self) -> None:
        composer = _composer()
        composer.add_unit("wifi")
        composer.set_privacy_authorization(PrivacyAuthorization(service_id="Camera", identifier="us.zoom.xos"))
        first = composer.build()
        first.units[0].settings["SSID_STR"] = "tampered"
        first.units[1].settings["Services"].clear()

        second = composer.build()
        assert "SSID_STR" not in second.units[0].settings
        assert list(second.units[1].settings["Services"]) == ["Camera"]
        assert "SSID_STR" not in composer.units[0].settings

    def test_rebuild_with_stable_ids_is_identical(self) -> None:
        def make() -> ProfileComposer:
            composer = ProfileComposer(name="Test", identifier="com.acme.test", stable_ids=True)
            composer.apply_template(get_template("Development Tools"), ZOOM)
            return composer

        assert make().build() == make().build()

    def test_human_summary(self) -> None:
        composer = _composer()
        composer.add_unit("firewall")
        composer.set_unit_enabled("firewall", False)
        composer.set_privacy_authorization(
            PrivacyAuthorization(service_id="AppleEvents", identifier="com.acme.agent",
                                 receiver_identifier="com.apple.finder")
        )
        composer.set_privacy_authorization(
            PrivacyAuthorization(service_id="Camera", identifier="com.acme.agent", allowed=False)
        )
        summary = composer.human_summary()
        assert 'Profile "Test" (com.acme.test), scope System' in summary
        assert "Firewall (disabled)" in summary
        assert "Allow com.acme.agent to use Automation on com.apple.finder" in summary
        assert "Deny com.acme.agent to use Camera" in summary

    def test_summary_without_units(self) -> None:
        assert "No configuration units." in _composer().human_summary()
