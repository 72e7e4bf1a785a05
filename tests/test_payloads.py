"""
Tests for the XML object descriptions.
"""

import base64
import xml.etree.ElementTree as ET

import pytest

from jamf_provisioner import payloads
from jamf_provisioner.sites import Site


def _parse(xml: str) -> ET.Element:
    return ET.fromstring(xml)


def _criteria(root):
    return [
        (c.findtext("name"), c.findtext("search_type"), c.findtext("value"), c.findtext("and_or"))
        for c in root.findall("criteria/criterion")
    ]


class TestExtensionAttribute:
    def test_reads_staged_version_file(self):
        root = _parse(payloads.extension_attribute_payload())

        assert root.tag == "computer_extension_attribute"
        assert root.findtext("name") == payloads.ATTRIBUTE_NAME
        script = root.findtext("input_type/script")
        assert "/private/var/macOSInstaller/installerVersion.txt" in script
        assert "Not Installed" in script
        assert root.findtext("input_type/type") == "script"


class TestScripts:
    @pytest.mark.parametrize("name,contents", payloads.script_definitions())
    def test_contents_base64_encoded(self, name, contents):
        root = _parse(payloads.script_payload(name, contents))

        assert root.findtext("name") == name
        assert root.findtext("category") == payloads.CATEGORY_NAME
        decoded = base64.b64decode(root.findtext("script_contents_encoded")).decode("utf-8")
        assert decoded == contents

    def test_three_scripts_in_order(self):
        assert [n for n, _ in payloads.script_definitions()] == [
            "Provisioning 1 Installer Cleanup",
            "Provisioning 2 Stage macOS Installer",
            "Provisioning 3 Reset Computer",
        ]


class TestSmartGroups:
    def test_staged_group(self):
        root = _parse(payloads.staged_group_payload("14.4"))

        assert root.findtext("name") == "Provisioning: Targets for Policy 3"
        assert root.findtext("is_smart") == "true"
        assert _criteria(root) == [(payloads.ATTRIBUTE_NAME, "is", "14.4", "and")]

    def test_targets_group(self):
        root = _parse(payloads.targets_group_payload("10.15"))

        assert root.findtext("name") == "Provisioning: Targets for Policy 1"
        assert _criteria(root) == [
            ("Computer Group", "not member of", payloads.GROUP_STAGED_NAME, "and"),
            ("Operating System Version", "greater than or equal", "10.15", "and"),
        ]
        assert root.findtext("criteria/size") == "2"

    def test_site_assigned(self):
        root = _parse(payloads.staged_group_payload("14.4", Site("East")))
        assert root.findtext("site/name") == "East"

    def test_no_site_is_empty_name(self):
        root = _parse(payloads.staged_group_payload("14.4"))
        assert not root.findtext("site/name")


class TestPolicies:
    def test_stage_policy(self):
        root = _parse(payloads.stage_policy_payload())

        assert root.findtext("general/name") == "Provisioning 01: Stage macOS Installer"
        assert root.findtext("general/enabled") == "false"
        assert root.findtext("general/trigger_checkin") == "true"
        assert root.findtext("general/frequency") == "Once every day"
        assert root.findtext("scope/all_computers") == "false"
        assert root.findtext("scope/computer_groups/computer_group/name") == payloads.GROUP_TARGETS_NAME
        assert root.findtext("scripts/script/name") == payloads.SCRIPT_CLEANUP_NAME
        assert root.findtext("files_processes/run_command") == (
            "softwareupdate --fetch-full-installer; jamf policy -event moveInstaller"
        )

    def test_move_policy(self):
        root = _parse(payloads.move_policy_payload(Site("East")))

        assert root.findtext("general/name") == "Provisioning 02: Move Installer"
        assert root.findtext("general/enabled") == "true"
        assert root.findtext("general/trigger_other") == "moveInstaller"
        assert root.findtext("scope/all_computers") == "true"
        assert root.findtext("scripts/script/name") == payloads.SCRIPT_STAGE_NAME
        assert root.findtext("maintenance/recon") == "true"
        assert root.findtext("general/site/name") == "East"

    def test_reset_policy(self):
        root = _parse(payloads.reset_policy_payload())

        assert root.findtext("general/name") == "Provisioning 03: Reset Computer"
        assert root.findtext("general/enabled") == "true"
        assert root.findtext("general/trigger_other") == "resetComputer"
        assert root.findtext("scope/all_computers") == "false"
        assert root.find("scope/computer_groups/computer_group") is None
        assert root.findtext("self_service/use_for_self_service") == "true"
        assert root.findtext("self_service/self_service_display_name") == "Provisioner: Reset Computer"
        assert root.findtext("self_service/install_button_text") == "Reset"
        assert root.findtext("scripts/script/name") == payloads.SCRIPT_RESET_NAME

    def test_enable_policy_payload(self):
        root = _parse(payloads.enable_policy_payload())
        assert root.tag == "policy"
        assert root.findtext("general/enabled") == "true"


def test_category_payload():
    assert _parse(payloads.category_payload()).findtext("name") == "Provisioning"
