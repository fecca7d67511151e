"""Tally engine: records one weighted vote per account per proposal.

A vote is a single state transition on an open proposal:

1. Reject if the proposal has closed.
2. Reject if the proposal is poll-gated and the voter holds none of the
   poll gate capabilities.
3. Reject a second vote from the same account.
4. Validate the option indices and weights.
5. Compute the voter's raw power in every snapshot class and add it to
   the per-class totals (once per voter, regardless of the split).
6. Split each class's raw power across the chosen options by weight
   (floor division) and add it to the per-option accumulators.
7. Mark the voter as having voted.

All deltas are computed and range-checked before anything is written,
so a rejected vote leaves the proposal untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from hybridgov.errors import AuthorizationError, ProposalStateError
from hybridgov.models.proposal import Proposal
from hybridgov.tally.power import (
    ACCUMULATOR_BITS,
    WEIGHT_TOTAL,
    BalanceLookup,
    CapabilityLookup,
    check_fits,
    class_power,
    validate_weights,
)


@dataclass(frozen=True)
class VoteReceipt:
    """The externally observable record of a vote.

    Individual option choices cannot be recovered from proposal state
    beyond the aggregated totals; this receipt is what gets audited.
    """
    proposal_id: int
    voter: str
    indices: tuple[int, ...]
    weights: tuple[int, ...]
    class_powers: tuple[int, ...]
    cast_utc: datetime


class TallyEngine:
    """Applies votes to proposals.

    Usage:
        engine = TallyEngine(balance_lookup, capability_lookup)
        receipt = engine.vote(proposal, "alice", [0, 1], [60, 40])
    """

    def __init__(
        self,
        balance_lookup: BalanceLookup,
        capability_lookup: CapabilityLookup,
        accumulator_bits: int = ACCUMULATOR_BITS,
    ) -> None:
        self._balance_lookup = balance_lookup
        self._capability_lookup = capability_lookup
        self._accumulator_bits = accumulator_bits

    def vote(
        self,
        proposal: Proposal,
        voter: str,
        indices: Sequence[int],
        weights: Sequence[int],
        privileged_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> VoteReceipt:
        """Record ``voter``'s weighted vote on ``proposal``.

        Args:
            proposal: The target proposal (mutated on success only).
            voter: Voting account.
            indices: Chosen option indices.
            weights: Percentage of the voter's power per chosen option.
            privileged_id: Account that bypasses class gates.
            now: Current UTC time.

        Returns:
            The VoteReceipt for auditing.

        Raises:
            ProposalStateError: Proposal closed or voter already voted.
            AuthorizationError: Voter fails the poll-level gate.
            ValidationError: Malformed indices/weights.
            AccumulatorOverflowError: An option accumulator would overflow.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        if not proposal.is_open(now):
            raise ProposalStateError(
                f"Voting on proposal {proposal.proposal_id} has closed"
            )
        if proposal.restricted and not self._capability_lookup(
            voter, sorted(proposal.poll_gate_ids)
        ):
            raise AuthorizationError(
                f"Voter {voter} lacks a capability required by proposal "
                f"{proposal.proposal_id}"
            )
        if voter in proposal.voted:
            raise ProposalStateError(
                f"Voter {voter} has already voted on proposal {proposal.proposal_id}"
            )

        validate_weights(indices, weights, len(proposal.options))

        powers = [
            class_power(
                voter, vc, self._balance_lookup, self._capability_lookup, privileged_id
            )
            for vc in proposal.classes_snapshot
        ]

        # Stage every write, checking ranges, before applying any of them
        new_totals = [
            total + power for total, power in zip(proposal.class_totals_raw, powers)
        ]
        for total in new_totals:
            check_fits(total, self._accumulator_bits)
        staged: dict[int, list[int]] = {}
        for idx, weight in zip(indices, weights):
            row = list(proposal.options[idx].class_raw)
            for c, power in enumerate(powers):
                if power == 0:
                    continue
                delta = power * weight // WEIGHT_TOTAL
                if delta == 0:
                    continue
                row[c] += delta
                check_fits(row[c], self._accumulator_bits)
            staged[idx] = row

        proposal.class_totals_raw[:] = new_totals
        for idx, row in staged.items():
            proposal.options[idx].class_raw[:] = row
        proposal.voted.add(voter)

        return VoteReceipt(
            proposal_id=proposal.proposal_id,
            voter=voter,
            indices=tuple(indices),
            weights=tuple(weights),
            class_powers=tuple(powers),
            cast_utc=now,
        )
