"""Voting class data models.

A voting class is one weighted method of counting voters. Each class
contributes a percentage slice of the combined score; the slices of a
configuration always sum to 100.

Two strategies exist:
- DIRECT: one qualifying account = one full vote.
- BALANCE_WEIGHTED: power proportional to an external balance
  (optionally square-rooted), with a minimum-balance floor.

The variants are separate frozen dataclasses carrying only the fields
that apply to them. Either variant may be capability-gated: an empty
gate set means any account qualifies.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Sequence, Union


class ClassStrategy(str, enum.Enum):
    """How a class converts a voter into raw power."""
    DIRECT = "direct"
    BALANCE_WEIGHTED = "balance_weighted"


@dataclass(frozen=True)
class DirectClass:
    """One account, one vote (subject to the gate)."""
    slice_pct: int
    gate_ids: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "gate_ids", frozenset(self.gate_ids))

    @property
    def strategy(self) -> ClassStrategy:
        return ClassStrategy.DIRECT


@dataclass(frozen=True)
class BalanceWeightedClass:
    """Power proportional to the voter's balance in ``asset``.

    Balances below ``min_balance`` carry no power. With ``quadratic``
    set, the integer square root of the balance is used instead.
    """
    slice_pct: int
    asset: str
    quadratic: bool = False
    min_balance: int = 0
    gate_ids: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "gate_ids", frozenset(self.gate_ids))

    @property
    def strategy(self) -> ClassStrategy:
        return ClassStrategy.BALANCE_WEIGHTED


VotingClass = Union[DirectClass, BalanceWeightedClass]


def class_to_record(voting_class: VotingClass) -> dict[str, Any]:
    """Serialise a class to a JSON-friendly dict (gate ids sorted)."""
    record: dict[str, Any] = {
        "strategy": voting_class.strategy.value,
        "slice_pct": voting_class.slice_pct,
        "gate_ids": sorted(voting_class.gate_ids),
    }
    if isinstance(voting_class, BalanceWeightedClass):
        record["asset"] = voting_class.asset
        record["quadratic"] = voting_class.quadratic
        record["min_balance"] = voting_class.min_balance
    return record


def class_from_record(record: dict[str, Any]) -> VotingClass:
    """Build a class from its record form.

    Raises:
        ValueError: If the strategy is unknown.
    """
    strategy = ClassStrategy(record["strategy"])
    gate_ids = frozenset(str(g) for g in record.get("gate_ids", []))
    if strategy == ClassStrategy.DIRECT:
        return DirectClass(slice_pct=int(record["slice_pct"]), gate_ids=gate_ids)
    return BalanceWeightedClass(
        slice_pct=int(record["slice_pct"]),
        asset=record.get("asset") or "",
        quadratic=bool(record.get("quadratic", False)),
        min_balance=int(record.get("min_balance", 0)),
        gate_ids=gate_ids,
    )


def classes_hash(classes: Sequence[VotingClass]) -> str:
    """Content hash of an ordered class configuration.

    Canonical JSON (sorted keys) so the same configuration always
    hashes identically, regardless of gate-set iteration order.
    """
    canonical = json.dumps(
        [class_to_record(c) for c in classes],
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"
