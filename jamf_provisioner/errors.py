"""
Centralized error handling for Jamf Provisioner.

Error Hierarchy:
- ProvisionerError: base for every failure the tool reports to the operator
  - ConfigurationError: missing or invalid settings
  - AuthorizationError: the account lacks required privileges
  - UserCancelled: the operator quit at a prompt
  - JamfClientError (see jamf_provisioner.jamf_client): server/API failures

Each class carries an exit_code so calling automation can tell
"authorization failed" from "created and rolled back" from "cancelled".

Usage:
    from jamf_provisioner.errors import AuthorizationError, exit_code_for

    raise AuthorizationError(missing={"Delete Policies"})

    except ProvisionerError as e:
        sys.exit(exit_code_for(e))
"""

import logging
from enum import IntEnum
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


class ExitCode(IntEnum):
    """Process exit codes."""

    SUCCESS = 0
    ERROR = 1
    UNAUTHORIZED = 2
    CANCELLED = 3
    ROLLED_BACK = 4


# =============================================================================
# Exception Classes
# =============================================================================

class ProvisionerError(Exception):
    """
    Base class for expected provisioner errors.
    Messages are safe to show to the operator.
    """
    exit_code = ExitCode.ERROR

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(ProvisionerError):
    """Settings are missing or invalid."""
    exit_code = ExitCode.ERROR


class AuthorizationError(ProvisionerError):
    """The account is missing one or more required privileges."""
    exit_code = ExitCode.UNAUTHORIZED

    def __init__(self, missing: Iterable[str], message: Optional[str] = None):
        self.missing = frozenset(missing)
        if message is None:
            message = "Account is missing required privileges: " + ", ".join(sorted(self.missing))
        super().__init__(message)


class UserCancelled(ProvisionerError):
    """Operator quit or cancelled at a prompt."""
    exit_code = ExitCode.CANCELLED

    def __init__(self, message: str = "Cancelled by user"):
        super().__init__(message)


def exit_code_for(e: BaseException) -> int:
    """
    Map an exception to a process exit code.

    ProvisionerError subclasses use their own exit_code; anything else is
    unexpected and logged with its traceback.
    """
    if isinstance(e, ProvisionerError):
        return int(e.exit_code)

    logger.exception("Unexpected error", exc_info=e)
    return int(ExitCode.ERROR)
