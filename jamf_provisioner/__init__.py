"""
Jamf Provisioner.

Builds a macOS re-provisioning workflow inside a Jamf Pro server: a
category, an extension attribute, three scripts, two smart groups and three
policies, created in dependency order and rolled back as a unit on failure.
"""

__version__ = "1.0.0"
