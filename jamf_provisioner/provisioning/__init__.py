"""
Provisioning workflow: ledger, pipeline, rollback and teardown.

Usage:
    from jamf_provisioner.provisioning import PipelineOptions, ProvisioningPipeline

    result = ProvisioningPipeline(client, PipelineOptions("14.4")).run()
"""

from jamf_provisioner.provisioning.ledger import Ledger, RunStatus
from jamf_provisioner.provisioning.pipeline import (
    PipelineOptions,
    ProvisioningPipeline,
    ProvisioningResult,
)
from jamf_provisioner.provisioning.rollback import (
    RollbackCoordinator,
    RollbackReport,
    rollback_order,
)
from jamf_provisioner.provisioning.teardown import (
    TeardownDescriptor,
    build_descriptor,
    emit,
    load_artifact,
    run_teardown,
)

__all__ = [
    "Ledger",
    "RunStatus",
    "PipelineOptions",
    "ProvisioningPipeline",
    "ProvisioningResult",
    "RollbackCoordinator",
    "RollbackReport",
    "rollback_order",
    "TeardownDescriptor",
    "build_descriptor",
    "emit",
    "load_artifact",
    "run_teardown",
]
