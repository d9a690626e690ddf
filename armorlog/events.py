"""Event records observed from the relay."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any


class EventCategory(str, Enum):
    """Stream a record was received on."""

    ALERT = "alert"
    LOG = "log"
    MESSAGE = "message"

    @property
    def title(self) -> str:
        return self.value.capitalize()


# Relay attribute names backing each filter, in filter order
FILTER_ATTRIBUTES = (
    ("namespace", "NamespaceName"),
    ("log_type", "Type"),
    ("operation", "Operation"),
    ("container_name", "ContainerName"),
    ("pod_name", "PodName"),
    ("source", "Source"),
    ("resource", "Resource"),
)


@dataclass(frozen=True)
class EventRecord:
    """One alert, log or message received from the relay.

    ``attributes`` holds every field of the relay message, keyed by the
    relay's field names; the typed fields are the values filters test.
    """

    category: EventCategory
    namespace: str = ""
    log_type: str = ""
    operation: str = ""
    container_name: str = ""
    pod_name: str = ""
    source: str = ""
    resource: str = ""
    updated_time: str = ""
    attributes: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_attributes(
        cls, category: EventCategory | str, attributes: Mapping[str, Any]
    ) -> EventRecord:
        """Build a record from a relay message converted to a mapping."""
        values = {name: str(attributes.get(key) or "") for name, key in FILTER_ATTRIBUTES}
        return cls(
            category=EventCategory(category),
            updated_time=str(attributes.get("UpdatedTime") or ""),
            attributes=MappingProxyType(dict(attributes)),
            **values,
        )

    def filter_values(self) -> tuple[str, ...]:
        """Attribute values in filter order."""
        return tuple(getattr(self, name) for name, _ in FILTER_ATTRIBUTES)

    def to_dict(self) -> dict[str, Any]:
        return dict(self.attributes)
