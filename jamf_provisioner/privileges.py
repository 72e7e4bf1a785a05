"""
Account privilege check.

Maps each object type the provisioner touches to the privileges the
account needs on it. The account record is read once, before anything is
created, so a missing privilege never leaves a half-built workflow behind.
"""

import logging
from typing import FrozenSet, Iterable, Set

from jamf_provisioner.audit_log import audit
from jamf_provisioner.errors import AuthorizationError
from jamf_provisioner.jamf_client import Credential, JamfClient

logger = logging.getLogger(__name__)

# Object -> actions required on it
PRIVILEGE_REQUIREMENTS: dict[str, tuple[str, ...]] = {
    # ------------------------------------------------------------------
    # Created, then deleted again on rollback or teardown
    # ------------------------------------------------------------------
    'Computer Extension Attributes': ('Create', 'Delete'),
    'Scripts': ('Create', 'Delete'),
    'Smart Computer Groups': ('Create', 'Read', 'Delete'),   # read: target count
    'Policies': ('Create', 'Update', 'Delete'),               # update: enable policy 1

    # ------------------------------------------------------------------
    # Read-only lookups
    # ------------------------------------------------------------------
    'Accounts': ('Read',),          # this check itself
    'Sites': ('Read',),
    'Categories': ('Create', 'Read'),
}

REQUIRED_PRIVILEGES: FrozenSet[str] = frozenset(
    f"{action} {obj}"
    for obj, actions in PRIVILEGE_REQUIREMENTS.items()
    for action in actions
)


def missing_privileges(observed: Iterable[str]) -> Set[str]:
    """Required privileges absent from the observed set."""
    return set(REQUIRED_PRIVILEGES - {p.strip() for p in observed})


def fetch_privileges(client: JamfClient, username: str) -> FrozenSet[str]:
    """
    Read the JSS object privileges held by an account.

    Returns:
        Privilege names, e.g. {"Create Scripts", "Read Sites"}
    """
    account = client.get_account(username)
    return frozenset(
        (p.text or "").strip()
        for p in account.findall("privileges/jss_objects/privilege")
        if p.text
    )


def describe_requirements() -> str:
    """Operator-facing list of what the account needs."""
    lines = []
    for obj, actions in PRIVILEGE_REQUIREMENTS.items():
        lines.append(f"-{'/'.join(a.upper() for a in actions)} on {obj}")
    return "\n".join(lines)


def validate(client: JamfClient, credential: Credential) -> FrozenSet[str]:
    """
    Verify the account holds every required privilege.

    Args:
        client: Client authenticated as the account
        credential: The account to check

    Returns:
        The observed privilege set

    Raises:
        AuthorizationError: One or more privileges are missing
    """
    audit("Checking to see if admin user %s has the correct privileges...", credential.username)
    observed = fetch_privileges(client, credential.username)

    missing = missing_privileges(observed)
    if missing:
        audit(
            "The admin user credentials that were entered do not meet all of the "
            "privilege requirements. Missing: %s",
            ", ".join(sorted(missing)),
        )
        logger.warning(f"Account {credential.username} missing privileges: {sorted(missing)}")
        raise AuthorizationError(missing)

    audit("Admin user %s has all of the privileges necessary, continuing on...", credential.username)
    return observed
