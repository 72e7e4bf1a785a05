"""
XML object descriptions for the provisioning workflow.

Builds the Classic API payloads for every object the pipeline creates.
Names here are load-bearing: smart group criteria and policy scopes refer
to other objects by name, so they must match what was created.
"""

import base64
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Sequence, Tuple

from jamf_provisioner.sites import Site, site_name

CATEGORY_NAME = "Provisioning"

ATTRIBUTE_NAME = "Provisioning: macOS Installer Version"

SCRIPT_CLEANUP_NAME = "Provisioning 1 Installer Cleanup"
SCRIPT_STAGE_NAME = "Provisioning 2 Stage macOS Installer"
SCRIPT_RESET_NAME = "Provisioning 3 Reset Computer"

GROUP_STAGED_NAME = "Provisioning: Targets for Policy 3"
GROUP_TARGETS_NAME = "Provisioning: Targets for Policy 1"

POLICY_STAGE_NAME = "Provisioning 01: Stage macOS Installer"
POLICY_MOVE_NAME = "Provisioning 02: Move Installer"
POLICY_RESET_NAME = "Provisioning 03: Reset Computer"

MOVE_INSTALLER_EVENT = "moveInstaller"
RESET_COMPUTER_EVENT = "resetComputer"

STAGING_DIR = "/private/var/macOSInstaller"

# =============================================================================
# Script bodies deployed to computers
# =============================================================================

ATTRIBUTE_SCRIPT = f"""#!/bin/bash

if [[ ! -f {STAGING_DIR}/installerVersion.txt ]]; then
echo "<result>Not Installed</result>"
else
echo "<result>$(cat {STAGING_DIR}/installerVersion.txt)</result>"
fi
"""

CLEANUP_SCRIPT = f"""#!/bin/sh

echo "Checking to see if macOS installer exists"
count=$(ls {STAGING_DIR} | grep -c "Install macOS")

# Remove older installers so the download grabs the current one
if [[ "$count" > 0 ]]; then
\techo "Deleting any previous macOS installers"
\trm -rf /Applications/Install\\ macOS\\ *.app
fi

exit 0
"""

STAGE_SCRIPT = f"""#!/bin/sh

# Exit with a failure so the policy can try again tomorrow
if (ls /Applications | grep "Install macOS"); then
\techo "The installer app exists, continuing on..."
else
\techo "The installer app either didn't download successfully or it got deleted before this policy could run. Ending..."
\texit 1
fi

if [[ ! -d {STAGING_DIR} ]]; then
\techo "Directory does not exist, creating..."
\tmkdir -p {STAGING_DIR}
fi

if [[ -f {STAGING_DIR}/InstallMacOS.dmg ]]; then
\techo "Previous dmg file exists, deleting..."
\trm -rf {STAGING_DIR}/InstallMacOS.dmg
fi

echo "Moving installer..."
mv -f /Applications/Install\\ macOS\\ *.app {STAGING_DIR}

echo "Saving version to file..."
installerOSVersion=$(/usr/libexec/PlistBuddy -c "Print Payload\\ Image\\ Info:version" {STAGING_DIR}/Install\\ macOS\\ *.app/Contents/SharedSupport/InstallInfo.plist)
echo "$installerOSVersion" > {STAGING_DIR}/installerVersion.txt

cd {STAGING_DIR}

echo "Creating DMG of Installer..."
hdiutil create -fs HFS+ -srcfolder {STAGING_DIR}/Install\\ macOS\\ *.app -volname "InstallMacOS" "InstallMacOS.dmg"

echo "Deleting original..."
rm -rf {STAGING_DIR}/Install\\ macOS\\ *.app
"""

RESET_SCRIPT = f"""#!/bin/sh

hdiutil attach -nobrowse {STAGING_DIR}/InstallMacOS.dmg

macOSVersion=$(/usr/bin/sw_vers -productVersion)
echo "macOS Version $macOSVersion"

installerOSVersion=$(/usr/libexec/PlistBuddy -c "Print Payload\\ Image\\ Info:version" /Volumes/InstallMacOS/Install\\ macOS\\ *.app/Contents/SharedSupport/InstallInfo.plist)
echo "Installer Version $installerOSVersion"

installerName=$(ls /Volumes/InstallMacOS | grep "Install macOS")
echo "Running from path /Volumes/InstallMacOS/$installerName"

helper="/Library/Application Support/JAMF/bin/jamfHelper.app/Contents/MacOS/jamfHelper"
icon=/Volumes/InstallMacOS/"$installerName"/Contents/Resources/DarkProductPageIcon.icns

# --eraseinstall needs the installer and the running OS on the same version
if [[ "$macOSVersion" != "$installerOSVersion" ]]; then
\techo "Preparing to upgrade the computer. This may take a little while."
\t"$helper" -windowType fs -title "macOS Upgrade" -heading "Starting..." -description "The upgrade process has started. It will take about 10-15 minutes for the beginning processes to finish and then your computer will automatically restart." -icon "$icon" -timeout 900 -countdown -countdownPrompt "Computer will restart in approximately: " -alignCountdown center &
\tjamfHelperPID=$!
\t/usr/bin/nohup /Volumes/InstallMacOS/"$installerName"/Contents/Resources/startosinstall --agreetolicense --forcequitapps --pidtosignal $jamfHelperPID &
\texit 0
fi

echo "Preparing to erase the computer, this may take a little while..."
"$helper" -windowType fs -title "macOS Wipe/Install" -heading "Starting..." -description "The wipe/install process has started. It will take about 10-15 minutes for the beginning processes to finish and then your computer will automatically restart." -icon "$icon" -timeout 900 -countdown -countdownPrompt "Computer will restart in approximately: " -alignCountdown center &
jamfHelperPID=$!
/usr/bin/nohup /Volumes/InstallMacOS/"$installerName"/Contents/Resources/startosinstall --eraseinstall --newvolumename "Macintosh HD" --agreetolicense --forcequitapps --pidtosignal $jamfHelperPID &

exit 0
"""

SCRIPT_NOTES: Dict[str, str] = {
    SCRIPT_CLEANUP_NAME: (
        'Created by Jamf Provisioner. Used by the "Provisioning 01" policy to remove any '
        '"Install macOS" apps already in /Applications so the download fetches the correct version.'
    ),
    SCRIPT_STAGE_NAME: (
        'Created by Jamf Provisioner. Run by the "Provisioning 02" policy to move the downloaded '
        f'installer to {STAGING_DIR}, record its version for the extension attribute and package it into a DMG.'
    ),
    SCRIPT_RESET_NAME: (
        'Created by Jamf Provisioner. Run from Self Service by the "Provisioning 03" policy. Upgrades '
        'the computer when its OS and the staged installer differ, otherwise erases and reinstalls macOS.'
    ),
}

RESET_DESCRIPTION = (
    "This will initiate a process to begin a full wipe of this computer. Please make sure you have "
    "backed up all data before proceeding. If this computer isn't up to date, this will first upgrade "
    "the computer and you will need to run this again to wipe it."
)

STAGE_RUN_COMMAND = f"softwareupdate --fetch-full-installer; jamf policy -event {MOVE_INSTALLER_EVENT}"


# =============================================================================
# Builders
# =============================================================================

def _sub(parent: ET.Element, tag: str, text: Optional[str] = None) -> ET.Element:
    element = ET.SubElement(parent, tag)
    if text is not None:
        element.text = text
    return element


def _bool(value: bool) -> str:
    return "true" if value else "false"


def _to_xml(root: ET.Element) -> str:
    return ET.tostring(root, encoding="unicode")


def _site(parent: ET.Element, site: Optional[Site]) -> None:
    _sub(_sub(parent, "site"), "name", site_name(site))


def category_payload(name: str = CATEGORY_NAME) -> str:
    root = ET.Element("category")
    _sub(root, "name", name)
    return _to_xml(root)


def extension_attribute_payload() -> str:
    """Extension attribute reporting the staged installer version."""
    root = ET.Element("computer_extension_attribute")
    _sub(root, "name", ATTRIBUTE_NAME)
    _sub(root, "enabled", "true")
    _sub(root, "description", (
        'Created by Jamf Provisioner. Reports the version of the "Install macOS" app staged in '
        f'{STAGING_DIR}. "Not Installed" means nothing has been staged on the computer yet.'
    ))
    _sub(root, "data_type", "String")
    input_type = _sub(root, "input_type")
    _sub(input_type, "type", "script")
    _sub(input_type, "platform", "Mac")
    _sub(input_type, "script", ATTRIBUTE_SCRIPT)
    _sub(root, "inventory_display", "Operating System")
    _sub(root, "recon_display", "Extension Attributes")
    return _to_xml(root)


def script_payload(name: str, contents: str, category: str = CATEGORY_NAME) -> str:
    """Script object; contents are base64 encoded to preserve formatting."""
    root = ET.Element("script")
    _sub(root, "name", name)
    _sub(root, "category", category)
    _sub(root, "filename", name)
    _sub(root, "info")
    _sub(root, "notes", SCRIPT_NOTES.get(name, "Created by Jamf Provisioner."))
    _sub(root, "priority", "Before")
    _sub(root, "parameters")
    _sub(root, "os_requirements")
    encoded = base64.b64encode(contents.encode("utf-8")).decode("ascii")
    _sub(root, "script_contents_encoded", encoded)
    return _to_xml(root)


def smart_group_payload(
    name: str,
    criteria: Sequence[Tuple[str, str, str]],
    site: Optional[Site] = None,
) -> str:
    """
    Smart computer group.

    Args:
        name: Group name
        criteria: (criterion name, search type, value) tuples, ANDed in order
        site: Site to assign the group to
    """
    root = ET.Element("computer_group")
    _sub(root, "name", name)
    _sub(root, "is_smart", "true")
    _site(root, site)
    criteria_el = _sub(root, "criteria")
    _sub(criteria_el, "size", str(len(criteria)))
    for priority, (criterion_name, search_type, value) in enumerate(criteria):
        criterion = _sub(criteria_el, "criterion")
        _sub(criterion, "name", criterion_name)
        _sub(criterion, "priority", str(priority))
        _sub(criterion, "and_or", "and")
        _sub(criterion, "search_type", search_type)
        _sub(criterion, "value", value)
        _sub(criterion, "opening_paren", "false")
        _sub(criterion, "closing_paren", "false")
    return _to_xml(root)


def staged_group_payload(latest_version: str, site: Optional[Site] = None) -> str:
    """Group 1: computers whose staged installer is the latest version."""
    return smart_group_payload(
        GROUP_STAGED_NAME,
        [(ATTRIBUTE_NAME, "is", latest_version)],
        site,
    )


def targets_group_payload(os_floor: str, site: Optional[Site] = None) -> str:
    """Group 2: not in group 1 and at least the OS floor."""
    return smart_group_payload(
        GROUP_TARGETS_NAME,
        [
            ("Computer Group", "not member of", GROUP_STAGED_NAME),
            ("Operating System Version", "greater than or equal", os_floor),
        ],
        site,
    )


def policy_payload(
    name: str,
    script_name: str,
    site: Optional[Site] = None,
    enabled: bool = True,
    trigger_checkin: bool = False,
    event: Optional[str] = None,
    frequency: str = "Ongoing",
    all_computers: bool = False,
    scope_groups: Sequence[str] = (),
    run_command: Optional[str] = None,
    recon: bool = False,
    self_service: Optional[Dict[str, str]] = None,
) -> str:
    """
    Policy running one script.

    Args:
        name: Policy name
        script_name: Script to run (by name)
        site: Site to assign the policy to
        enabled: Initial enabled state
        trigger_checkin: Run at recurring check-in
        event: Custom event trigger name
        frequency: Execution frequency
        all_computers: Scope to every computer
        scope_groups: Computer group names to scope to
        run_command: Files and Processes command
        recon: Update inventory afterwards
        self_service: display_name/button/description for Self Service
    """
    root = ET.Element("policy")

    general = _sub(root, "general")
    _sub(general, "name", name)
    _sub(general, "enabled", _bool(enabled))
    _sub(general, "trigger", "EVENT" if event else "CHECKIN")
    _sub(general, "trigger_checkin", _bool(trigger_checkin))
    _sub(general, "trigger_other", event)
    _sub(general, "frequency", frequency)
    _sub(_sub(general, "category"), "name", CATEGORY_NAME)
    _site(general, site)

    scope = _sub(root, "scope")
    _sub(scope, "all_computers", _bool(all_computers))
    groups_el = _sub(scope, "computer_groups")
    for group in scope_groups:
        _sub(_sub(groups_el, "computer_group"), "name", group)

    ss = _sub(root, "self_service")
    _sub(ss, "use_for_self_service", _bool(self_service is not None))
    if self_service is not None:
        _sub(ss, "self_service_display_name", self_service["display_name"])
        _sub(ss, "install_button_text", self_service["button"])
        _sub(ss, "reinstall_button_text", self_service["button"])
        _sub(ss, "self_service_description", self_service["description"])
        _sub(ss, "force_users_to_view_description", "true")
        category = _sub(_sub(ss, "self_service_categories"), "category")
        _sub(category, "name", CATEGORY_NAME)
        _sub(category, "display_in", "true")
        _sub(category, "feature_in", "false")

    scripts = _sub(root, "scripts")
    _sub(scripts, "size", "1")
    script = _sub(scripts, "script")
    _sub(script, "name", script_name)
    _sub(script, "priority", "Before")

    _sub(_sub(root, "maintenance"), "recon", _bool(recon))
    _sub(_sub(root, "files_processes"), "run_command", run_command)
    return _to_xml(root)


def stage_policy_payload(site: Optional[Site] = None) -> str:
    """Policy 1: disabled, daily at check-in, scoped to group 2."""
    return policy_payload(
        POLICY_STAGE_NAME,
        SCRIPT_CLEANUP_NAME,
        site=site,
        enabled=False,
        trigger_checkin=True,
        frequency="Once every day",
        scope_groups=[GROUP_TARGETS_NAME],
        run_command=STAGE_RUN_COMMAND,
    )


def move_policy_payload(site: Optional[Site] = None) -> str:
    """Policy 2: enabled, custom event, all computers."""
    return policy_payload(
        POLICY_MOVE_NAME,
        SCRIPT_STAGE_NAME,
        site=site,
        event=MOVE_INSTALLER_EVENT,
        all_computers=True,
        recon=True,
    )


def reset_policy_payload(site: Optional[Site] = None) -> str:
    """Policy 3: enabled, Self Service, left unscoped for the operator."""
    return policy_payload(
        POLICY_RESET_NAME,
        SCRIPT_RESET_NAME,
        site=site,
        event=RESET_COMPUTER_EVENT,
        self_service={
            "display_name": "Provisioner: Reset Computer",
            "button": "Reset",
            "description": RESET_DESCRIPTION,
        },
    )


def enable_policy_payload() -> str:
    root = ET.Element("policy")
    _sub(_sub(root, "general"), "enabled", "true")
    return _to_xml(root)


def script_definitions() -> List[Tuple[str, str]]:
    """(name, contents) for the three scripts, in creation order."""
    return [
        (SCRIPT_CLEANUP_NAME, CLEANUP_SCRIPT),
        (SCRIPT_STAGE_NAME, STAGE_SCRIPT),
        (SCRIPT_RESET_NAME, RESET_SCRIPT),
    ]
