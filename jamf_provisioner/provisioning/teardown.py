"""
Teardown artifact.

After a successful run the operator can save a standalone script that
deletes everything the run created. The script embeds the ledger, the
server URL and the audit log path. It never embeds credentials: running it
prompts for them again.

Usage:
    descriptor = build_descriptor(result.ledger, server_url, log_path)
    path = emit(descriptor, Path("~/Desktop/JamfProvisionerDeconstructor.py"))

    # later
    python ~/Desktop/JamfProvisionerDeconstructor.py
    # or
    jamf-provisioner teardown ~/Desktop/JamfProvisionerDeconstructor.py
"""

import ast
import json
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from jamf_provisioner.audit_log import audit, close_audit_log, open_audit_log
from jamf_provisioner.config.settings import get_settings
from jamf_provisioner.dialogs import Dialog
from jamf_provisioner.errors import ExitCode, ProvisionerError, UserCancelled, exit_code_for
from jamf_provisioner.jamf_client import Credential, JamfClient
from jamf_provisioner.logging_config import configure_logging
from jamf_provisioner.provisioning.ledger import Ledger
from jamf_provisioner.provisioning.rollback import RollbackCoordinator, RollbackReport

logger = logging.getLogger(__name__)

CONFIRM_PHRASE = "DELETE"
CANCEL_PHRASE = "CANCEL"

ARTIFACT_TEMPLATE = '''#!/usr/bin/env python3
"""
Jamf Provisioner teardown for {server_url}

Generated {created_at}. Deletes the {count} objects created by that
provisioning run. You will be asked for Jamf Pro credentials.
"""

import json
import sys

from jamf_provisioner.provisioning.teardown import run_from_artifact

DESCRIPTOR = json.loads({descriptor_json!r})

if __name__ == "__main__":
    sys.exit(run_from_artifact(DESCRIPTOR, __file__))
'''


@dataclass
class TeardownDescriptor:
    """Everything a teardown needs except credentials."""

    ledger: Ledger
    server_url: str
    log_path: str
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "server_url": self.server_url,
            "log_path": self.log_path,
            "created_at": self.created_at,
            "ledger": self.ledger.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TeardownDescriptor":
        """Create from dictionary (JSON deserialization)."""
        return cls(
            ledger=Ledger.from_dict(data["ledger"]),
            server_url=data["server_url"],
            log_path=data.get("log_path", ""),
            created_at=data.get("created_at", ""),
        )


def build_descriptor(
    ledger: Ledger,
    server_url: str,
    log_path: Union[str, Path],
) -> TeardownDescriptor:
    # Snapshot, so later ledger mutations don't leak into the artifact
    return TeardownDescriptor(
        ledger=Ledger.from_dict(ledger.to_dict()),
        server_url=server_url,
        log_path=str(log_path),
        created_at=datetime.now(timezone.utc).isoformat(),
    )


def render(descriptor: TeardownDescriptor) -> str:
    """Source text of the teardown script."""
    return ARTIFACT_TEMPLATE.format(
        server_url=descriptor.server_url,
        created_at=descriptor.created_at,
        count=descriptor.ledger.size,
        descriptor_json=json.dumps(descriptor.to_dict(), sort_keys=True),
    )


def emit(descriptor: TeardownDescriptor, path: Union[str, Path]) -> Path:
    """
    Write the teardown script with mode 0755.

    Written atomically using a temp file, so a crash never leaves a
    half-written script in place.
    """
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_file = path.with_suffix(".tmp")
    with open(temp_file, "w", encoding="utf-8") as f:
        f.write(render(descriptor))
    os.chmod(temp_file, 0o755)
    temp_file.replace(path)

    audit("Teardown script written to %s", path)
    logger.info(f"Teardown artifact written to {path}")
    return path


def load_artifact(path: Union[str, Path]) -> TeardownDescriptor:
    """
    Read the descriptor embedded in a teardown script without running it.

    Raises:
        ProvisionerError: File is missing or is not a teardown script
    """
    path = Path(path).expanduser()
    try:
        tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    except (OSError, SyntaxError) as e:
        raise ProvisionerError(f"Cannot read teardown script {path}: {e}")

    for node in tree.body:
        if not isinstance(node, ast.Assign):
            continue
        if not any(isinstance(t, ast.Name) and t.id == "DESCRIPTOR" for t in node.targets):
            continue
        call = node.value
        if isinstance(call, ast.Call) and call.args and isinstance(call.args[0], ast.Constant):
            try:
                return TeardownDescriptor.from_dict(json.loads(call.args[0].value))
            except (ValueError, KeyError, TypeError) as e:
                raise ProvisionerError(f"Corrupted teardown script {path}: {e}")

    raise ProvisionerError(f"{path} is not a Jamf Provisioner teardown script")


def _require_phrase(dialog) -> None:
    """Loop until the operator types DELETE; CANCEL aborts."""
    while True:
        answer = dialog.ask_text(
            f"Type {CONFIRM_PHRASE} to permanently delete these objects, or {CANCEL_PHRASE} to stop"
        )
        if answer == CONFIRM_PHRASE:
            return
        if answer == CANCEL_PHRASE:
            raise UserCancelled("Teardown cancelled")
        dialog.notify(f"Please type {CONFIRM_PHRASE} or {CANCEL_PHRASE} exactly.")


def run_teardown(
    descriptor: TeardownDescriptor,
    dialog,
    client_factory: Callable[[str, Credential], Any],
    settle_seconds: float = 5.0,
    sleep: Callable[[float], None] = time.sleep,
) -> RollbackReport:
    """
    Confirm with the operator, then delete every recorded object.

    Args:
        descriptor: What to delete and where
        dialog: Operator dialog
        client_factory: Builds a client from (server_url, credential)
        settle_seconds: Pause before deleting the extension attribute
        sleep: Injectable sleep (tests)

    Raises:
        UserCancelled: The operator declined at any prompt
    """
    ledger = Ledger.from_dict(descriptor.ledger.to_dict())
    listing = "\n".join(
        f"- {r.resource_type.label} {r.resource_id}: {r.name}" for r in ledger.records()
    )
    if not dialog.confirm(
        f"This will delete the following objects from {descriptor.server_url}:\n\n{listing}",
        proceed="Continue",
        cancel="Quit",
    ):
        raise UserCancelled("Teardown cancelled")

    username = dialog.ask_text("Jamf Pro username")
    password = dialog.ask_secret("Jamf Pro password")
    _require_phrase(dialog)

    audit("User %s confirmed teardown of %d objects", username, ledger.size)
    client = client_factory(descriptor.server_url, Credential(username, password))
    try:
        with dialog.waiting("Tearing down", "Deleting provisioning objects..."):
            return RollbackCoordinator(
                client, settle_seconds=settle_seconds, sleep=sleep
            ).rollback(ledger, reason="teardown requested")
    finally:
        close = getattr(client, "close", None)
        if close is not None:
            close()


def run_from_artifact(
    data: Dict[str, Any],
    artifact_path: Union[str, Path, None] = None,
    dialog=None,
    client_factory: Optional[Callable[[str, Credential], Any]] = None,
) -> int:
    """
    Entry point of an emitted teardown script.

    Appends to the provisioning run's audit log, and deletes the script itself once
    every object has been removed.

    Returns:
        Process exit code
    """
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    descriptor = data if isinstance(data, TeardownDescriptor) else TeardownDescriptor.from_dict(data)
    dialog = dialog or Dialog()

    if client_factory is None:
        def client_factory(server_url: str, credential: Credential) -> JamfClient:
            return JamfClient(
                server_url,
                credential,
                timeout=settings.request_timeout,
                verify_ssl=settings.verify_ssl,
            )

    handler = open_audit_log(
        Path(descriptor.log_path or settings.log_path),
        title="JAMF PROVISIONER TEARDOWN",
        mode="a",
    )
    try:
        report = run_teardown(
            descriptor, dialog, client_factory, settle_seconds=settings.settle_seconds
        )
    except ProvisionerError as e:
        audit("Teardown stopped: %s", e)
        dialog.notify(str(e))
        return exit_code_for(e)
    finally:
        close_audit_log(handler)

    if not report.succeeded:
        failed = "\n".join(
            f"- {r.resource_type.label} {r.resource_id}: {r.name} ({detail})"
            for r, detail in report.failed
        )
        dialog.notify(
            f"{len(report.deleted)} objects deleted, {len(report.failed)} could not be "
            f"deleted and must be removed manually:\n\n{failed}\n\nSee {descriptor.log_path}"
        )
        return int(ExitCode.ERROR)

    if artifact_path is not None:
        try:
            Path(artifact_path).unlink()
        except OSError as e:
            logger.warning(f"Could not remove teardown script {artifact_path}: {e}")

    dialog.notify(f"All {len(report.deleted)} provisioning objects were deleted.")
    return int(ExitCode.SUCCESS)
