"""
Site selection.

Jamf Pro can partition objects into sites. When the server has any, the
operator picks one (or none) and every smart group and policy created
afterwards is assigned to it.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional
from xml.etree.ElementTree import Element

from jamf_provisioner.audit_log import audit
from jamf_provisioner.jamf_client import JamfClient, JamfClientError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Site:
    """Organizational partition chosen for this run."""

    name: str


def site_name(site: Optional[Site]) -> str:
    """Name to embed in payloads; empty when unassigned."""
    return site.name if site is not None else ""


def _site_count(sites: Element) -> int:
    size_text = (sites.findtext("size") or "").strip()
    try:
        return int(size_text)
    except ValueError:
        raise JamfClientError(f"Unexpected site count '{size_text}'")


def _site_names(sites: Element) -> List[str]:
    return [
        (s.findtext("name") or "").strip()
        for s in sites.findall("site")
        if (s.findtext("name") or "").strip()
    ]


def count_sites(client: JamfClient) -> int:
    """Number of sites configured on the server."""
    return _site_count(client.read("sites"))


def resolve(client: JamfClient, dialog, preselected: Optional[str] = None) -> Optional[Site]:
    """
    Resolve the site for this run.

    Args:
        client: Authenticated client
        dialog: Operator dialog used to offer the choice
        preselected: Site name supplied up front (skips the prompt)

    Returns:
        The chosen Site, or None for no site
    """
    audit("Checking for sites...")

    sites = client.read("sites")
    if _site_count(sites) == 0:
        audit("No sites configured on server %s, moving on...", client.server_url)
        return None

    names = _site_names(sites)
    audit("%d site(s) configured. Prompting user to select which one they want to use...", len(names))

    if preselected:
        if preselected not in names:
            raise JamfClientError(f"Site '{preselected}' not found on server")
        choice = preselected
    else:
        choice = dialog.choose(
            "This server has sites configured. Which site should the provisioning "
            "workflow be assigned to? (Leave empty for no site)",
            names,
        )

    if not choice:
        audit("User chose not to put content in a site...")
        return None

    audit("User selected %s. The workflow will be assigned to this site...", choice)
    logger.info(f"Using site '{choice}'")
    return Site(choice)
