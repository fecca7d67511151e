"""Proposal data models.

A Proposal is created once with a frozen copy of the class
configuration, mutated only by votes while open, and read-only once
its end time has passed. Resolution is recorded exactly once in a
terminal Resolution record.

Invariant: class_totals_raw and every Option.class_raw have the same
length as classes_snapshot, fixed at creation and never resized.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from hybridgov.models.voting_class import (
    VotingClass,
    class_from_record,
    class_to_record,
)


class ProposalStatus(str, enum.Enum):
    """Lifecycle state of a proposal. Progression is one-way."""
    OPEN = "open"
    CLOSED = "closed"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class Call:
    """One external call in an action batch."""
    target: str
    value: int = 0
    payload: str = ""


@dataclass
class Option:
    """One choice within a proposal.

    class_raw[c] is the raw power accumulated for this option from
    voting class c of the proposal's snapshot.
    """
    class_raw: list[int]
    batch: tuple[Call, ...] = ()


@dataclass(frozen=True)
class Resolution:
    """Terminal outcome of a proposal, recorded once."""
    winner_index: Optional[int]
    valid: bool
    executed: bool
    hi: int
    second: int
    scores: tuple[int, ...]
    resolved_utc: datetime
    execution_error: Optional[str] = None


@dataclass
class Proposal:
    """A multi-option proposal tallied across weighted voting classes."""
    proposal_id: int
    title: str
    description_ref: str
    creator_id: str
    created_utc: datetime
    end_utc: datetime
    classes_snapshot: tuple[VotingClass, ...]
    class_totals_raw: list[int]
    options: list[Option]
    restricted: bool = False
    poll_gate_ids: frozenset[str] = field(default_factory=frozenset)
    voted: set[str] = field(default_factory=set)
    resolution: Optional[Resolution] = None

    def is_open(self, now: datetime) -> bool:
        """Votes are accepted up to and including end_utc."""
        return now <= self.end_utc

    def status(self, now: datetime) -> ProposalStatus:
        if self.resolution is not None:
            return ProposalStatus.RESOLVED
        if self.is_open(now):
            return ProposalStatus.OPEN
        return ProposalStatus.CLOSED

    @property
    def vote_count(self) -> int:
        return len(self.voted)

    def to_record(self) -> dict[str, Any]:
        """Serialise for persistence."""
        resolution = None
        if self.resolution is not None:
            r = self.resolution
            resolution = {
                "winner_index": r.winner_index,
                "valid": r.valid,
                "executed": r.executed,
                "hi": r.hi,
                "second": r.second,
                "scores": list(r.scores),
                "resolved_utc": r.resolved_utc.isoformat(),
                "execution_error": r.execution_error,
            }
        return {
            "proposal_id": self.proposal_id,
            "title": self.title,
            "description_ref": self.description_ref,
            "creator_id": self.creator_id,
            "created_utc": self.created_utc.isoformat(),
            "end_utc": self.end_utc.isoformat(),
            "classes_snapshot": [class_to_record(c) for c in self.classes_snapshot],
            # Accumulators can exceed the JSON-safe integer range
            "class_totals_raw": [str(v) for v in self.class_totals_raw],
            "options": [
                {
                    "class_raw": [str(v) for v in o.class_raw],
                    "batch": [
                        {"target": c.target, "value": str(c.value), "payload": c.payload}
                        for c in o.batch
                    ],
                }
                for o in self.options
            ],
            "restricted": self.restricted,
            "poll_gate_ids": sorted(self.poll_gate_ids),
            "voted": sorted(self.voted),
            "resolution": resolution,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Proposal:
        """Restore a proposal from its persisted record."""
        resolution = None
        rd = record.get("resolution")
        if rd is not None:
            resolution = Resolution(
                winner_index=rd["winner_index"],
                valid=rd["valid"],
                executed=rd["executed"],
                hi=rd["hi"],
                second=rd["second"],
                scores=tuple(rd["scores"]),
                resolved_utc=datetime.fromisoformat(rd["resolved_utc"]),
                execution_error=rd.get("execution_error"),
            )
        options = [
            Option(
                class_raw=[int(v) for v in od["class_raw"]],
                batch=tuple(
                    Call(target=c["target"], value=int(c["value"]), payload=c["payload"])
                    for c in od.get("batch", [])
                ),
            )
            for od in record["options"]
        ]
        return cls(
            proposal_id=int(record["proposal_id"]),
            title=record["title"],
            description_ref=record["description_ref"],
            creator_id=record["creator_id"],
            created_utc=datetime.fromisoformat(record["created_utc"]),
            end_utc=datetime.fromisoformat(record["end_utc"]),
            classes_snapshot=tuple(
                class_from_record(c) for c in record["classes_snapshot"]
            ),
            class_totals_raw=[int(v) for v in record["class_totals_raw"]],
            options=options,
            restricted=record.get("restricted", False),
            poll_gate_ids=frozenset(record.get("poll_gate_ids", [])),
            voted=set(record.get("voted", [])),
            resolution=resolution,
        )
