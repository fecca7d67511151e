"""Winner resolution for closed proposals.

Combined score of an option (0..100):

    score(o) = sum over classes c with total[c] > 0 of
               option[o].class_raw[c] * slice_pct[c] // total[c]

Classes nobody had power in are left out of the sum entirely; their
slice is simply absent rather than shared.

The winner is found in one left-to-right pass tracking (hi, second).
The lowest-index option wins ties for the top score, but a tie at the
top always makes the result invalid because validity requires
hi > second as well as hi >= quorum_pct.

Resolution is recorded once on the proposal. Repeated calls return the
recorded outcome and never dispatch the winning batch again.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from hybridgov.errors import DispatchError, ProposalStateError
from hybridgov.integration.dispatch import ActionDispatcher
from hybridgov.models.proposal import Proposal, Resolution

TARGET_NOT_ALLOWED = "target_not_allowed"


@dataclass(frozen=True)
class WinnerReport:
    """What announce_winner reports to its caller."""
    proposal_id: int
    resolution: Resolution
    already_resolved: bool = False

    @property
    def winner_index(self) -> Optional[int]:
        return self.resolution.winner_index

    @property
    def valid(self) -> bool:
        return self.resolution.valid

    @property
    def executed(self) -> bool:
        return self.resolution.executed


def compute_scores(proposal: Proposal) -> list[int]:
    """Combined score per option, in option order."""
    totals = proposal.class_totals_raw
    scores: list[int] = []
    for option in proposal.options:
        score = 0
        for c, voting_class in enumerate(proposal.classes_snapshot):
            if totals[c] == 0:
                continue
            score += option.class_raw[c] * voting_class.slice_pct // totals[c]
        scores.append(score)
    return scores


def select_winner(scores: Sequence[int]) -> tuple[Optional[int], int, int]:
    """Return (winner_index, hi, second) from a left-to-right pass."""
    hi = 0
    second = 0
    winner: Optional[int] = None
    for idx, score in enumerate(scores):
        if score > hi:
            second = hi
            hi = score
            winner = idx
        elif score > second:
            second = score
    return winner, hi, second


class WinnerResolver:
    """Determines and records the outcome of closed proposals."""

    def announce_winner(
        self,
        proposal: Proposal,
        quorum_pct: int,
        allowed_targets: frozenset[str],
        dispatcher: Optional[ActionDispatcher],
        now: Optional[datetime] = None,
    ) -> WinnerReport:
        """Resolve ``proposal`` and dispatch the winning batch if valid.

        Args:
            proposal: A proposal whose voting window has passed.
            quorum_pct: Minimum winning score (current global quorum).
            allowed_targets: Current execution allow-list. Targets are
                re-checked here because the list may have changed
                since the proposal was created.
            dispatcher: Executes the winning batch.
            now: Current UTC time.

        Returns:
            WinnerReport, flagged already_resolved on repeat calls.

        Raises:
            ProposalStateError: If the proposal is still open.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        if proposal.resolution is not None:
            return WinnerReport(
                proposal_id=proposal.proposal_id,
                resolution=proposal.resolution,
                already_resolved=True,
            )
        if proposal.is_open(now):
            raise ProposalStateError(
                f"Proposal {proposal.proposal_id} is still open until "
                f"{proposal.end_utc.isoformat()}"
            )

        if all(total == 0 for total in proposal.class_totals_raw):
            resolution = Resolution(
                winner_index=None,
                valid=False,
                executed=False,
                hi=0,
                second=0,
                scores=tuple(0 for _ in proposal.options),
                resolved_utc=now,
            )
            proposal.resolution = resolution
            return WinnerReport(proposal_id=proposal.proposal_id, resolution=resolution)

        scores = compute_scores(proposal)
        winner, hi, second = select_winner(scores)
        valid = winner is not None and hi >= quorum_pct and hi > second

        executed = False
        execution_error: Optional[str] = None
        if valid and proposal.options[winner].batch:
            executed, execution_error = self._execute(
                proposal, winner, allowed_targets, dispatcher
            )

        resolution = Resolution(
            winner_index=winner,
            valid=valid,
            executed=executed,
            hi=hi,
            second=second,
            scores=tuple(scores),
            resolved_utc=now,
            execution_error=execution_error,
        )
        proposal.resolution = resolution
        return WinnerReport(proposal_id=proposal.proposal_id, resolution=resolution)

    def _execute(
        self,
        proposal: Proposal,
        winner: int,
        allowed_targets: frozenset[str],
        dispatcher: Optional[ActionDispatcher],
    ) -> tuple[bool, Optional[str]]:
        """Re-validate and dispatch the winning batch.

        Returns (executed, error). Dispatcher failures, whether reported
        or raised as DispatchError, RuntimeError or OSError, become
        executed=False; the tally outcome stands.
        """
        batch = proposal.options[winner].batch
        for call in batch:
            if call.target not in allowed_targets:
                return False, f"{TARGET_NOT_ALLOWED}: {call.target}"
        if dispatcher is None:
            return False, "no dispatcher configured"
        try:
            result = dispatcher.execute(proposal.proposal_id, batch)
        except (DispatchError, RuntimeError, OSError) as e:
            return False, str(e) or type(e).__name__
        if not result.success:
            return False, result.error or "dispatch failed"
        return True, None
