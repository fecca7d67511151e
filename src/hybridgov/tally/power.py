"""Voting power arithmetic: pure functions, no state.

Raw power is expressed in a fixed-point unit where POWER_SCALE (100)
represents one full vote. Every class scales by the same unit so that
per-class totals stay integral through the percentage math of winner
resolution.

Gating rule (per class):
- Empty gate set: every account qualifies.
- The privileged principal (the governor) always qualifies.
- Otherwise the voter must hold at least one gate capability (OR).
An unqualified voter has zero power in that class.
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional, Sequence

from hybridgov.errors import AccumulatorOverflowError, ValidationError
from hybridgov.models.voting_class import (
    BalanceWeightedClass,
    DirectClass,
    VotingClass,
)

POWER_SCALE = 100
WEIGHT_TOTAL = 100
ACCUMULATOR_BITS = 128

BalanceLookup = Callable[[str, str], int]  # (asset, account) -> balance
CapabilityLookup = Callable[[str, Iterable[str]], bool]  # (account, ids) -> holds any


def integer_sqrt(x: int) -> int:
    """Floor square root by Newton's (Babylonian) iteration.

    Raises:
        ValidationError: If x is negative.
    """
    if x < 0:
        raise ValidationError(f"Cannot take square root of negative value: {x}")
    if x == 0:
        return 0
    z = (x + 1) // 2
    y = x
    while z < y:
        y = z
        z = (x // z + z) // 2
    return y


def qualifies(
    voter: str,
    gate_ids: frozenset[str],
    capability_lookup: CapabilityLookup,
    privileged_id: Optional[str] = None,
) -> bool:
    """Whether ``voter`` passes a capability gate."""
    if not gate_ids:
        return True
    if privileged_id is not None and voter == privileged_id:
        return True
    return capability_lookup(voter, sorted(gate_ids))


def class_power(
    voter: str,
    voting_class: VotingClass,
    balance_lookup: BalanceLookup,
    capability_lookup: CapabilityLookup,
    privileged_id: Optional[str] = None,
) -> int:
    """Raw power of ``voter`` in one class, in POWER_SCALE units.

    Direct classes give POWER_SCALE to every qualifying voter.
    Balance-weighted classes give balance * POWER_SCALE (or
    isqrt(balance) * POWER_SCALE when quadratic), and zero below the
    class's minimum balance.
    """
    if not qualifies(voter, voting_class.gate_ids, capability_lookup, privileged_id):
        return 0

    if isinstance(voting_class, DirectClass):
        return POWER_SCALE

    if isinstance(voting_class, BalanceWeightedClass):
        balance = balance_lookup(voting_class.asset, voter)
        if balance < voting_class.min_balance or balance <= 0:
            return 0
        power = integer_sqrt(balance) if voting_class.quadratic else balance
        return power * POWER_SCALE

    raise ValidationError(f"Unknown voting class type: {type(voting_class).__name__}")


def validate_weights(
    indices: Sequence[int],
    weights: Sequence[int],
    option_count: int,
) -> None:
    """Check a single vote's distribution across options.

    Rules:
    - indices and weights have equal, nonzero length.
    - every index is in [0, option_count) and indices are distinct.
    - every weight is in [0, 100] and the weights sum to exactly 100.

    Raises:
        ValidationError: On the first rule violated.
    """
    if len(indices) == 0:
        raise ValidationError("A vote must select at least one option")
    if len(indices) != len(weights):
        raise ValidationError(
            f"Index/weight length mismatch: {len(indices)} indices, "
            f"{len(weights)} weights"
        )

    seen: set[int] = set()
    total = 0
    for idx, weight in zip(indices, weights):
        if idx < 0 or idx >= option_count:
            raise ValidationError(
                f"Option index {idx} out of range (options: {option_count})"
            )
        if idx in seen:
            raise ValidationError(f"Duplicate option index: {idx}")
        seen.add(idx)
        if weight < 0 or weight > WEIGHT_TOTAL:
            raise ValidationError(f"Weight {weight} must be in [0, {WEIGHT_TOTAL}]")
        total += weight

    if total != WEIGHT_TOTAL:
        raise ValidationError(f"Weights must sum to {WEIGHT_TOTAL}, got {total}")


def check_fits(value: int, width_bits: int = ACCUMULATOR_BITS) -> None:
    """Reject values outside an unsigned ``width_bits`` accumulator.

    Raises:
        AccumulatorOverflowError: If value < 0 or value >= 2**width_bits.
    """
    if value < 0 or value > (1 << width_bits) - 1:
        raise AccumulatorOverflowError(
            f"Value {value} does not fit in a {width_bits}-bit accumulator"
        )
