"""
Compensating rollback.

Deletes everything a failed run created, in an order the server accepts:
policies first (they reference groups and scripts), then smart groups
newest first (group 2 references group 1), then scripts, then the
extension attribute once the server has had time to drop its references.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from jamf_provisioner.audit_log import audit, audit_section
from jamf_provisioner.provisioning.ledger import Ledger
from jamf_provisioner.resources import ResourceRecord

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_SECONDS = 5.0


def rollback_order(ledger: Ledger) -> List[ResourceRecord]:
    """
    The order records are deleted in.

    Policies oldest first, groups newest first, scripts oldest first,
    attribute last.
    """
    order: List[ResourceRecord] = []
    order.extend(ledger.policies)
    order.extend(reversed(ledger.device_groups))
    order.extend(ledger.scripts)
    if ledger.attribute is not None:
        order.append(ledger.attribute)
    return order


@dataclass
class RollbackReport:
    """What a rollback sweep did."""

    reason: str = ""
    deleted: List[ResourceRecord] = field(default_factory=list)
    failed: List[Tuple[ResourceRecord, str]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failed

    @property
    def attempted(self) -> int:
        return len(self.deleted) + len(self.failed)


class RollbackCoordinator:
    """
    Undo a partially completed run.

    Usage:
        coordinator = RollbackCoordinator(client)
        report = coordinator.rollback(ledger, reason="script create failed")
    """

    def __init__(
        self,
        client,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        log_prefix: str = "",
        run_id: Optional[str] = None,
    ):
        """
        Args:
            client: Object exposing delete(resource_type, resource_id) -> bool
            settle_seconds: Pause before deleting the extension attribute
            sleep: Injectable sleep (tests)
            log_prefix: Run correlation prefix for log lines
            run_id: Run id attached to structured log records
        """
        self.client = client
        self.settle_seconds = settle_seconds
        self.sleep = sleep
        self.log_prefix = log_prefix
        self.run_id = run_id

    def _extra(self, record: Optional[ResourceRecord] = None) -> Dict[str, Any]:
        extra: Dict[str, Any] = {"run_id": self.run_id}
        if record is not None:
            extra["resource_type"] = record.resource_type.endpoint
            extra["resource_id"] = record.resource_id
        return extra

    def _delete(self, record: ResourceRecord, report: RollbackReport) -> None:
        label = record.resource_type.label
        try:
            ok = self.client.delete(record.resource_type, record.resource_id)
        except Exception as e:
            ok = False
            detail = str(e)
        else:
            detail = "server rejected delete"

        if ok:
            report.deleted.append(record)
            return

        report.failed.append((record, detail))
        audit("Could not delete %s %d (%s): %s", label, record.resource_id, record.name, detail)
        logger.error(
            f"{self.log_prefix} Rollback delete failed: {label} {record.resource_id}: {detail}",
            extra=self._extra(record),
        )

    def rollback(self, ledger: Ledger, reason: str = "") -> RollbackReport:
        """
        Delete every record in the ledger. Never raises.

        The ledger is cleared afterwards, so calling this twice deletes
        nothing the second time.
        """
        report = RollbackReport(reason=reason)

        if ledger.is_empty:
            logger.info(f"{self.log_prefix} No resources to roll back", extra=self._extra())
            return report

        audit_section("ROLLING BACK")
        if reason:
            audit("Rollback triggered: %s", reason)
        logger.warning(f"{self.log_prefix} Rolling back {ledger.size} resources: {reason}", extra=self._extra())

        for record in rollback_order(ledger):
            if record is ledger.attribute:
                audit("Waiting %s seconds for the server to release the extension attribute...",
                      self.settle_seconds)
                self.sleep(self.settle_seconds)
            self._delete(record, report)

        ledger.clear()

        if report.succeeded:
            audit("Rollback complete. %d resources deleted.", len(report.deleted))
            logger.info(f"{self.log_prefix} Rollback complete ({len(report.deleted)} deleted)", extra=self._extra())
        else:
            audit(
                "Rollback finished with %d failure(s). These resources must be deleted manually: %s",
                len(report.failed),
                ", ".join(f"{r.resource_type.label} {r.resource_id}" for r, _ in report.failed),
            )
        return report
