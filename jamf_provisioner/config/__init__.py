"""Configuration for Jamf Provisioner."""

from jamf_provisioner.config.settings import ProvisionerSettings, get_settings

__all__ = ["ProvisionerSettings", "get_settings"]
