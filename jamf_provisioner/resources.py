"""
Server object types and records of created objects.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class ResourceType(Enum):
    """
    Server object types created by the provisioner.

    Each member maps to its Classic API collection endpoint and to the
    root element name of the server's response document.
    """

    CATEGORY = ("categories", "category")
    REPORTING_ATTRIBUTE = ("computerextensionattributes", "computer_extension_attribute")
    SCRIPT = ("scripts", "script")
    DEVICE_GROUP = ("computergroups", "computer_group")
    POLICY = ("policies", "policy")

    def __init__(self, endpoint: str, object_name: str):
        self.endpoint = endpoint
        self.object_name = object_name

    @property
    def label(self) -> str:
        """Human-readable name used in logs."""
        return self.object_name.replace("_", " ")

    @classmethod
    def from_endpoint(cls, endpoint: str) -> "ResourceType":
        for member in cls:
            if member.endpoint == endpoint:
                return member
        raise ValueError(f"Unknown endpoint: {endpoint}")


@dataclass(frozen=True)
class ResourceRecord:
    """A resource created on the server by this run."""

    resource_type: ResourceType
    resource_id: int
    name: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "type": self.resource_type.endpoint,
            "id": self.resource_id,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceRecord":
        """Create from dictionary (JSON deserialization)."""
        return cls(
            resource_type=ResourceType.from_endpoint(data["type"]),
            resource_id=int(data["id"]),
            name=data.get("name", ""),
        )
