"""Proposal lifecycle: creation, snapshotting and lookup.

Proposals are kept in an append-only list indexed by their sequential
identifier (0, 1, 2, ...). Identifiers are never reused.

Creation freezes the current class configuration into the proposal, so
later replacements of the global configuration never change how an
existing proposal is tallied. Each option gets a zeroed per-class
accumulator sized to that snapshot.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional, Sequence

from hybridgov.errors import ProposalStateError, ValidationError
from hybridgov.models.config import GovernanceLimits
from hybridgov.models.proposal import Call, Option, Proposal
from hybridgov.models.voting_class import VotingClass


class ProposalLifecycle:
    """Creates and stores proposals.

    Usage:
        lifecycle = ProposalLifecycle(limits)
        proposal = lifecycle.create_proposal(
            creator_id="alice",
            title="Fund the audit",
            description_ref="ipfs://...",
            duration_minutes=60,
            option_count=2,
            classes_snapshot=registry.snapshot(),
            allowed_targets=frozenset({"treasury"}),
        )
    """

    def __init__(
        self,
        limits: GovernanceLimits | None = None,
        self_address: str = "",
    ) -> None:
        self._limits = limits or GovernanceLimits()
        self._self_address = self_address
        self._proposals: list[Proposal] = []

    @classmethod
    def from_records(
        cls,
        records: list[dict[str, Any]],
        limits: GovernanceLimits | None = None,
        self_address: str = "",
    ) -> ProposalLifecycle:
        """Restore from persisted proposal records (in id order)."""
        lifecycle = cls(limits, self_address)
        for expected_id, record in enumerate(
            sorted(records, key=lambda r: int(r["proposal_id"]))
        ):
            proposal = Proposal.from_record(record)
            if proposal.proposal_id != expected_id:
                raise ValueError(
                    f"Proposal records are not contiguous: expected id "
                    f"{expected_id}, got {proposal.proposal_id}"
                )
            lifecycle._proposals.append(proposal)
        return lifecycle

    @property
    def count(self) -> int:
        return len(self._proposals)

    def create_proposal(
        self,
        creator_id: str,
        title: str,
        description_ref: str,
        duration_minutes: int,
        option_count: int,
        classes_snapshot: Sequence[VotingClass],
        allowed_targets: frozenset[str],
        batches: Optional[Sequence[Sequence[Call]]] = None,
        poll_gate_ids: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> Proposal:
        """Validate inputs and create a new proposal.

        Validates:
        - Title non-empty and within the byte limit (UTF-8).
        - option_count in [1, max_options].
        - duration_minutes in [min_duration, max_duration].
        - A non-empty class snapshot.
        - Batches (if any): one per option, each within max_calls, every
          target allow-listed and never this engine's own address.

        Returns:
            The new Proposal.

        Raises:
            ValidationError: On validation failure.
        """
        limits = self._limits
        title = (title or "").strip()
        if not title:
            raise ValidationError("Proposal title must not be empty")
        if len(title.encode("utf-8")) > limits.max_title_bytes:
            raise ValidationError(
                f"Proposal title exceeds {limits.max_title_bytes} bytes"
            )
        if not 1 <= option_count <= limits.max_options:
            raise ValidationError(
                f"option_count must be in [1, {limits.max_options}], got {option_count}"
            )
        if not limits.min_duration_minutes <= duration_minutes <= limits.max_duration_minutes:
            raise ValidationError(
                f"duration_minutes must be in [{limits.min_duration_minutes}, "
                f"{limits.max_duration_minutes}], got {duration_minutes}"
            )
        if not classes_snapshot:
            raise ValidationError("No voting classes configured")

        option_batches: list[tuple[Call, ...]] = [() for _ in range(option_count)]
        if batches is not None:
            if len(batches) != option_count:
                raise ValidationError(
                    f"Expected {option_count} batches (one per option), got {len(batches)}"
                )
            for i, batch in enumerate(batches):
                self._validate_batch(i, batch, allowed_targets)
                option_batches[i] = tuple(batch)

        if now is None:
            now = datetime.now(timezone.utc)

        snapshot = tuple(classes_snapshot)
        width = len(snapshot)
        gate = frozenset(poll_gate_ids or ())

        proposal = Proposal(
            proposal_id=len(self._proposals),
            title=title,
            description_ref=description_ref,
            creator_id=creator_id,
            created_utc=now,
            end_utc=now + timedelta(minutes=duration_minutes),
            classes_snapshot=snapshot,
            class_totals_raw=[0] * width,
            options=[Option(class_raw=[0] * width, batch=b) for b in option_batches],
            restricted=bool(gate),
            poll_gate_ids=gate,
        )
        self._proposals.append(proposal)
        return proposal

    def discard_latest(self, proposal_id: int) -> None:
        """Undo the most recent creation (used for persistence rollback)."""
        if not self._proposals or self._proposals[-1].proposal_id != proposal_id:
            raise ValueError(f"Proposal {proposal_id} is not the latest proposal")
        self._proposals.pop()

    def get(self, proposal_id: int) -> Proposal:
        """Look up a proposal.

        Raises:
            ProposalStateError: If no such proposal exists.
        """
        if not 0 <= proposal_id < len(self._proposals):
            raise ProposalStateError(f"Proposal not found: {proposal_id}")
        return self._proposals[proposal_id]

    def all(self) -> list[Proposal]:
        return list(self._proposals)

    def to_records(self) -> list[dict[str, Any]]:
        return [p.to_record() for p in self._proposals]

    def _validate_batch(
        self,
        option_index: int,
        batch: Sequence[Call],
        allowed_targets: frozenset[str],
    ) -> None:
        if len(batch) > self._limits.max_calls:
            raise ValidationError(
                f"Option {option_index} batch has {len(batch)} calls "
                f"(max {self._limits.max_calls})"
            )
        for call in batch:
            if self._self_address and call.target == self._self_address:
                raise ValidationError(
                    f"Option {option_index} batch targets the governance engine itself"
                )
            if call.target not in allowed_targets:
                raise ValidationError(
                    f"Option {option_index} batch target not allowed: {call.target}"
                )
