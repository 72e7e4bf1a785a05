"""
Provisioning ledger.

Records every resource created during a run so the run can be undone.
The ledger is an explicit value handed to each pipeline step and to the
rollback coordinator; it is appended to in creation order and never
reordered.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from jamf_provisioner.resources import ResourceRecord, ResourceType

logger = logging.getLogger(__name__)


class RunStatus(Enum):
    """Outcome of a provisioning run."""

    COMPLETED = "completed"
    ROLLED_BACK = "rolled_back"
    CANCELLED = "cancelled"


@dataclass
class Ledger:
    """
    Every resource created this run, grouped by type in creation order.

    The reporting attribute has its own slot: nothing else depends on it
    being deleted first, so rollback handles it separately and last.
    Categories are never recorded.

    Attributes:
        scripts: Script records, oldest first
        device_groups: Smart group records, oldest first
        policies: Policy records, oldest first
        attribute: The extension attribute record, if created
    """

    scripts: List[ResourceRecord] = field(default_factory=list)
    device_groups: List[ResourceRecord] = field(default_factory=list)
    policies: List[ResourceRecord] = field(default_factory=list)
    attribute: Optional[ResourceRecord] = None

    def record(self, record: ResourceRecord) -> "Ledger":
        """
        Append a newly created resource.

        Raises:
            ValueError: For a second attribute or an untracked type
        """
        rtype = record.resource_type
        if rtype is ResourceType.SCRIPT:
            self.scripts.append(record)
        elif rtype is ResourceType.DEVICE_GROUP:
            self.device_groups.append(record)
        elif rtype is ResourceType.POLICY:
            self.policies.append(record)
        elif rtype is ResourceType.REPORTING_ATTRIBUTE:
            if self.attribute is not None:
                raise ValueError("Ledger already holds a reporting attribute")
            self.attribute = record
        else:
            raise ValueError(f"{rtype.label} resources are not tracked for rollback")

        logger.debug(f"Ledger: recorded {rtype.label} {record.resource_id}")
        return self

    @property
    def is_empty(self) -> bool:
        return self.size == 0

    @property
    def size(self) -> int:
        attribute_count = 1 if self.attribute is not None else 0
        return len(self.scripts) + len(self.device_groups) + len(self.policies) + attribute_count

    def records(self) -> List[ResourceRecord]:
        """All records in creation order by type (attribute first)."""
        head = [self.attribute] if self.attribute is not None else []
        return head + self.scripts + self.device_groups + self.policies

    def clear(self) -> None:
        self.scripts = []
        self.device_groups = []
        self.policies = []
        self.attribute = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "scripts": [r.to_dict() for r in self.scripts],
            "device_groups": [r.to_dict() for r in self.device_groups],
            "policies": [r.to_dict() for r in self.policies],
            "attribute": self.attribute.to_dict() if self.attribute else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Ledger":
        """Create from dictionary (JSON deserialization)."""
        attribute = data.get("attribute")
        return cls(
            scripts=[ResourceRecord.from_dict(r) for r in data.get("scripts", [])],
            device_groups=[ResourceRecord.from_dict(r) for r in data.get("device_groups", [])],
            policies=[ResourceRecord.from_dict(r) for r in data.get("policies", [])],
            attribute=ResourceRecord.from_dict(attribute) if attribute else None,
        )
