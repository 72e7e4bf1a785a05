"""
Provisioning pipeline.

Creates the provisioning workflow on a Jamf Pro server in dependency
order, recording every created object in a Ledger. Any failure rolls back
everything created so far.

Step order:
1. ensure_category       - "Provisioning" category (never rolled back)
2. create_attribute      - installer version extension attribute
3. create_scripts        - cleanup, stage, reset
4. create_staged_group   - smart group 1 (attribute is latest version)
5. await_propagation     - group 1 must be readable before group 2 names it
6. create_targets_group  - smart group 2 (not in group 1, OS >= floor)
7. create_policies       - stage, move, reset
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from jamf_provisioner import payloads
from jamf_provisioner.audit_log import audit, audit_section
from jamf_provisioner.errors import ProvisionerError
from jamf_provisioner.jamf_client import JamfClientError, JamfPropagationError
from jamf_provisioner.provisioning.ledger import Ledger, RunStatus
from jamf_provisioner.provisioning.rollback import RollbackCoordinator, RollbackReport
from jamf_provisioner.resources import ResourceType
from jamf_provisioner.sites import Site

logger = logging.getLogger(__name__)


def generate_run_id() -> str:
    return f"prov-{uuid.uuid4().hex[:8]}"


@dataclass
class PipelineOptions:
    """
    Inputs that shape the created objects.

    Attributes:
        latest_version: macOS version group 1 matches on
        site: Site every group and policy is assigned to
        os_floor: Minimum OS version for group 2
        propagation_interval: Seconds between group 1 read-back attempts
        propagation_attempts: Read-back attempts before giving up
        settle_seconds: Pause before rollback deletes the extension attribute
    """

    latest_version: str
    site: Optional[Site] = None
    os_floor: str = "10.15"
    propagation_interval: float = 5.0
    propagation_attempts: int = 6
    settle_seconds: float = 5.0


@dataclass
class ProvisioningResult:
    """Outcome of one pipeline run."""

    run_id: str
    status: RunStatus
    ledger: Ledger
    target_count: int = 0
    error: Optional[str] = None
    failed_step: Optional[str] = None
    rollback: Optional[RollbackReport] = None

    @property
    def succeeded(self) -> bool:
        return self.status is RunStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "ledger": self.ledger.to_dict(),
            "target_count": self.target_count,
            "error": self.error,
            "failed_step": self.failed_step,
        }


class ProvisioningPipeline:
    """
    Runs the creation steps against one server.

    Usage:
        pipeline = ProvisioningPipeline(client, PipelineOptions("14.4", site))
        result = pipeline.run()
        if result.succeeded:
            pipeline.enable_policy(result.ledger)
    """

    def __init__(
        self,
        client,
        options: PipelineOptions,
        rollback: Optional[RollbackCoordinator] = None,
        sleep: Callable[[float], None] = time.sleep,
        run_id: Optional[str] = None,
    ):
        self.client = client
        self.options = options
        self.sleep = sleep
        self.run_id = run_id or generate_run_id()
        self.log_prefix = f"[{self.run_id}]"
        self._extra = {"run_id": self.run_id}
        self.rollback = rollback or RollbackCoordinator(
            client,
            settle_seconds=options.settle_seconds,
            sleep=sleep,
            log_prefix=self.log_prefix,
            run_id=self.run_id,
        )

    def steps(self) -> List[Tuple[str, Callable[[Ledger], Ledger]]]:
        return [
            ("ensure_category", self.ensure_category),
            ("create_attribute", self.create_attribute),
            ("create_scripts", self.create_scripts),
            ("create_staged_group", self.create_staged_group),
            ("await_propagation", self.await_propagation),
            ("create_targets_group", self.create_targets_group),
            ("create_policies", self.create_policies),
        ]

    def run(self, ledger: Optional[Ledger] = None) -> ProvisioningResult:
        """
        Execute every step, rolling back on the first failure.

        A Ctrl-C during a step rolls back the same way and reports the run
        as CANCELLED.

        Returns:
            ProvisioningResult with status COMPLETED, ROLLED_BACK or CANCELLED
        """
        ledger = ledger if ledger is not None else Ledger()
        audit_section("PROVISIONING")
        logger.info(f"{self.log_prefix} Starting provisioning run", extra=self._extra)

        step_name = None
        try:
            for step_name, step in self.steps():
                logger.info(f"{self.log_prefix} Step: {step_name}", extra=self._extra)
                ledger = step(ledger)
        except KeyboardInterrupt:
            logger.warning(f"{self.log_prefix} Interrupted during {step_name}", extra=self._extra)
            audit("Provisioning interrupted by user at step %s", step_name)
            return self._rolled_back(ledger, step_name, "Interrupted by user", RunStatus.CANCELLED)
        except Exception as e:
            if not isinstance(e, ProvisionerError):
                logger.exception(f"{self.log_prefix} Unexpected error in {step_name}", extra=self._extra)
            else:
                logger.error(f"{self.log_prefix} Provisioning failed at {step_name}: {e}", extra=self._extra)
            audit("Provisioning failed at step %s: %s", step_name, e)
            return self._rolled_back(ledger, step_name, str(e), RunStatus.ROLLED_BACK)

        count = self.target_count(ledger)
        audit("Provisioning complete. %d computer(s) currently targeted by policy 1.", count)
        logger.info(f"{self.log_prefix} Provisioning complete ({ledger.size} resources)", extra=self._extra)
        return ProvisioningResult(
            run_id=self.run_id,
            status=RunStatus.COMPLETED,
            ledger=ledger,
            target_count=count,
        )

    def _rolled_back(
        self,
        ledger: Ledger,
        step_name: Optional[str],
        error: str,
        status: RunStatus,
    ) -> ProvisioningResult:
        report = self.rollback.rollback(ledger, reason=error)
        return ProvisioningResult(
            run_id=self.run_id,
            status=status,
            ledger=ledger,
            error=error,
            failed_step=step_name,
            rollback=report,
        )

    # =========================================================================
    # Steps
    # =========================================================================

    def ensure_category(self, ledger: Ledger) -> Ledger:
        """Create the category unless it already exists. Not recorded."""
        audit("Checking for the %s category...", payloads.CATEGORY_NAME)
        categories = self.client.read("categories")
        names = {(c.findtext("name") or "").strip() for c in categories.findall("category")}

        if payloads.CATEGORY_NAME in names:
            audit("Category %s already exists, moving on...", payloads.CATEGORY_NAME)
            return ledger

        self.client.create(
            ResourceType.CATEGORY,
            payloads.category_payload(),
            name=payloads.CATEGORY_NAME,
        )
        return ledger

    def create_attribute(self, ledger: Ledger) -> Ledger:
        record = self.client.create(
            ResourceType.REPORTING_ATTRIBUTE,
            payloads.extension_attribute_payload(),
            name=payloads.ATTRIBUTE_NAME,
        )
        return ledger.record(record)

    def create_scripts(self, ledger: Ledger) -> Ledger:
        for name, contents in payloads.script_definitions():
            record = self.client.create(
                ResourceType.SCRIPT,
                payloads.script_payload(name, contents),
                name=name,
            )
            ledger.record(record)
        return ledger

    def create_staged_group(self, ledger: Ledger) -> Ledger:
        record = self.client.create(
            ResourceType.DEVICE_GROUP,
            payloads.staged_group_payload(self.options.latest_version, self.options.site),
            name=payloads.GROUP_STAGED_NAME,
        )
        return ledger.record(record)

    def await_propagation(self, ledger: Ledger) -> Ledger:
        """
        Wait until group 1 reads back from the server.

        Raises:
            JamfPropagationError: Group 1 never became readable
        """
        if not ledger.device_groups:
            raise JamfPropagationError("No smart group to wait for")

        group = ledger.device_groups[0]
        path = f"{ResourceType.DEVICE_GROUP.endpoint}/id/{group.resource_id}"
        interval = self.options.propagation_interval
        attempts = self.options.propagation_attempts

        audit("Waiting for %s to propagate on the server...", group.name)
        last_error = None
        for attempt in range(1, attempts + 1):
            self.sleep(interval)
            try:
                self.client.read(path)
            except JamfClientError as e:
                last_error = e
                logger.debug(
                    f"{self.log_prefix} {group.name} not readable yet (attempt {attempt}): {e}",
                    extra=self._extra,
                )
                continue
            logger.info(f"{self.log_prefix} {group.name} readable after {attempt} attempt(s)", extra=self._extra)
            return ledger

        raise JamfPropagationError(
            f"Smart group '{group.name}' was not readable after "
            f"{attempts * interval:g}s: {last_error}"
        )

    def create_targets_group(self, ledger: Ledger) -> Ledger:
        record = self.client.create(
            ResourceType.DEVICE_GROUP,
            payloads.targets_group_payload(self.options.os_floor, self.options.site),
            name=payloads.GROUP_TARGETS_NAME,
        )
        return ledger.record(record)

    def create_policies(self, ledger: Ledger) -> Ledger:
        site = self.options.site
        for name, payload in (
            (payloads.POLICY_STAGE_NAME, payloads.stage_policy_payload(site)),
            (payloads.POLICY_MOVE_NAME, payloads.move_policy_payload(site)),
            (payloads.POLICY_RESET_NAME, payloads.reset_policy_payload(site)),
        ):
            ledger.record(self.client.create(ResourceType.POLICY, payload, name=name))
        return ledger

    # =========================================================================
    # After success
    # =========================================================================

    def target_count(self, ledger: Ledger) -> int:
        """Computers currently in group 2; 0 when it cannot be read."""
        if len(ledger.device_groups) < 2:
            return 0

        group = ledger.device_groups[1]
        try:
            document = self.client.read(
                f"{ResourceType.DEVICE_GROUP.endpoint}/id/{group.resource_id}"
            )
        except JamfClientError as e:
            logger.warning(f"{self.log_prefix} Could not read target count: {e}", extra=self._extra)
            return 0

        size_text = (document.findtext("computers/size") or "").strip()
        if not size_text.isdigit():
            return 0
        return int(size_text)

    def enable_policy(self, ledger: Ledger) -> bool:
        """Enable policy 1 so computers start staging the installer."""
        if not ledger.policies:
            return False

        policy = ledger.policies[0]
        audit("Enabling policy %s...", policy.name)
        enabled = self.client.update(
            ResourceType.POLICY, policy.resource_id, payloads.enable_policy_payload()
        )
        if enabled:
            logger.info(f"{self.log_prefix} Enabled policy {policy.resource_id}", extra=self._extra)
        return enabled
