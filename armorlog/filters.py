"""Client-side event filters."""

from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import InvalidFilterError
from .events import EventRecord
from .options import Options

# (option attribute, flag name, case-insensitive) in compilation order
_FILTER_SPECS = (
    ("namespace", "--namespace", True),
    ("log_type", "--logType", True),
    ("operation", "--operation", True),
    ("container_name", "--container", True),
    ("pod_name", "--pod", True),
    ("source", "--source", False),
    ("resource", "--resource", False),
)


@dataclass(frozen=True)
class CompiledFilterSet:
    """Seven compiled patterns; a record must match all of them."""

    namespace: re.Pattern[str]
    log_type: re.Pattern[str]
    operation: re.Pattern[str]
    container_name: re.Pattern[str]
    pod_name: re.Pattern[str]
    source: re.Pattern[str]
    resource: re.Pattern[str]

    def patterns(self) -> tuple[re.Pattern[str], ...]:
        return tuple(getattr(self, name) for name, _, _ in _FILTER_SPECS)

    def matches(self, record: EventRecord) -> bool:
        """Return True if every pattern matches the record's attribute."""
        return all(
            pattern.search(value) is not None
            for pattern, value in zip(self.patterns(), record.filter_values())
        )


def compile_filters(options: Options) -> CompiledFilterSet:
    """Compile the filter strings of ``options``.

    Fails on the first invalid pattern; an empty string compiles to a pattern
    that matches everything.
    """
    compiled: dict[str, re.Pattern[str]] = {}
    for name, flag, ignore_case in _FILTER_SPECS:
        pattern = getattr(options, name)
        try:
            compiled[name] = re.compile(pattern, re.IGNORECASE if ignore_case else 0)
        except re.error as exc:
            raise InvalidFilterError(flag, pattern, str(exc)) from exc
    return CompiledFilterSet(**compiled)
