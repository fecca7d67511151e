"""Global governance configuration.

GlobalConfig is immutable. Every governance mutation produces a new
record with an incremented version and the service swaps it in whole;
fields are never patched in place.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any

from hybridgov.models.voting_class import (
    VotingClass,
    class_from_record,
    class_to_record,
)


@dataclass(frozen=True)
class GovernanceLimits:
    """Structural bounds applied to configurations, proposals and votes."""
    max_classes: int = 8
    max_options: int = 50
    max_calls: int = 20
    max_title_bytes: int = 256
    min_duration_minutes: int = 10
    max_duration_minutes: int = 43200
    accumulator_bits: int = 128

    def __post_init__(self) -> None:
        if self.max_classes < 1:
            raise ValueError("max_classes must be >= 1")
        if self.max_options < 1:
            raise ValueError("max_options must be >= 1")
        if self.max_calls < 1:
            raise ValueError("max_calls must be >= 1")
        if self.max_title_bytes < 1:
            raise ValueError("max_title_bytes must be >= 1")
        if not (1 <= self.min_duration_minutes <= self.max_duration_minutes):
            raise ValueError(
                "duration bounds must satisfy 1 <= min_duration_minutes "
                "<= max_duration_minutes"
            )
        if self.accumulator_bits < 8:
            raise ValueError("accumulator_bits must be >= 8")


@dataclass(frozen=True)
class GlobalConfig:
    """Current governance configuration, owned by the governor."""
    governor_id: str
    quorum_pct: int
    classes: tuple[VotingClass, ...] = ()
    allowed_targets: frozenset[str] = field(default_factory=frozenset)
    creator_capabilities: frozenset[str] = field(default_factory=frozenset)
    version: int = 0

    def replace(self, **changes: Any) -> GlobalConfig:
        """Return the next version of this config with ``changes`` applied."""
        return dataclasses.replace(self, version=self.version + 1, **changes)

    def to_record(self) -> dict[str, Any]:
        return {
            "governor_id": self.governor_id,
            "quorum_pct": self.quorum_pct,
            "classes": [class_to_record(c) for c in self.classes],
            "allowed_targets": sorted(self.allowed_targets),
            "creator_capabilities": sorted(self.creator_capabilities),
            "version": self.version,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> GlobalConfig:
        return cls(
            governor_id=record["governor_id"],
            quorum_pct=int(record["quorum_pct"]),
            classes=tuple(class_from_record(c) for c in record.get("classes", [])),
            allowed_targets=frozenset(record.get("allowed_targets", [])),
            creator_capabilities=frozenset(record.get("creator_capabilities", [])),
            version=int(record.get("version", 0)),
        )
