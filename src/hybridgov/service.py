"""Hybrid voting service: the orchestrating facade of the engine.

This is the primary interface for programmatic access. It wires:
- Authorization (governor-only configuration, capability-gated creation)
- Class configuration (ClassRegistry, replace-whole-list only)
- Proposal creation (ProposalLifecycle, snapshot of the class list)
- Voting (TallyEngine, one vote per account per proposal)
- Resolution (WinnerResolver, recorded once, optional batch dispatch)
- Audit trail (EventLog) and durable state (StateStore)

Every public mutating call runs under one lock and either completes in
full or leaves state unchanged. Engine errors are reported as failed
ServiceResults carrying the error kind; nothing is retried.

Governance state lives in an immutable GlobalConfig. Each governance
change builds the next version and swaps it in whole.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence

from hybridgov import __version__
from hybridgov.errors import AuthorizationError, GovernanceError, ValidationError
from hybridgov.governance.class_registry import ClassRegistry
from hybridgov.governance.proposal_lifecycle import ProposalLifecycle
from hybridgov.integration.balances import BalanceRegistry
from hybridgov.integration.capabilities import CapabilityProvider
from hybridgov.integration.dispatch import ActionDispatcher
from hybridgov.models.config import GlobalConfig
from hybridgov.models.proposal import Call, Proposal, ProposalStatus
from hybridgov.models.voting_class import VotingClass, class_to_record, classes_hash
from hybridgov.persistence.event_log import EventKind, EventLog, EventRecord
from hybridgov.persistence.state_store import StateStore
from hybridgov.policy.resolver import PolicyResolver
from hybridgov.tally.engine import TallyEngine
from hybridgov.tally.resolver import WinnerResolver, compute_scores

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


def _failure(error: GovernanceError) -> ServiceResult:
    return ServiceResult(
        success=False,
        errors=[str(error)],
        data={"error_kind": error.kind},
    )


class HybridVotingService:
    """Multi-class weighted governance facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = HybridVotingService(resolver, capabilities, balances, dispatcher)

        result = service.create_proposal("alice", "Fund audit", "ipfs://...", 60, 2)
        pid = result.data["proposal_id"]
        service.vote(pid, "bob", [0], [100])
        # ... after the voting window ...
        report = service.announce_winner(pid)

    Persistence (optional):
        service = HybridVotingService(..., event_log=log, state_store=store)
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        capabilities: CapabilityProvider,
        balances: BalanceRegistry,
        dispatcher: Optional[ActionDispatcher] = None,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._resolver = resolver
        self._limits = resolver.limits
        self._capabilities = capabilities
        self._balances = balances
        self._dispatcher = dispatcher
        self._event_log = event_log
        self._state_store = state_store
        self._lock = threading.RLock()

        self._registry = ClassRegistry(self._limits)
        self._tally = TallyEngine(
            self._balance_of, self._holds_any, self._limits.accumulator_bits
        )
        self._winner_resolver = WinnerResolver()

        stored_config = state_store.load_config() if state_store is not None else None
        if stored_config is not None:
            self._config = stored_config
            self._lifecycle = ProposalLifecycle.from_records(
                state_store.load_proposals(), self._limits, resolver.self_address
            )
        else:
            self._config = resolver.initial_config()
            self._lifecycle = ProposalLifecycle(self._limits, resolver.self_address)
        config_hash = self._registry.init_classes(self._config.classes)

        self._event_counter = event_log.count if event_log is not None else 0
        self._persistence_degraded = False

        if stored_config is None and self._event_counter == 0:
            err = self._record_event(
                EventKind.CLASSES_INITIALISED,
                self._config.governor_id,
                {
                    "config_hash": config_hash,
                    "classes": [class_to_record(c) for c in self._config.classes],
                    "quorum_pct": self._config.quorum_pct,
                },
            )
            if err:
                raise RuntimeError(err)

    # ------------------------------------------------------------------
    # Governance configuration (governor only)
    # ------------------------------------------------------------------

    @property
    def config(self) -> GlobalConfig:
        return self._config

    def set_classes(
        self,
        caller_id: str,
        classes: Sequence[VotingClass],
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Replace the whole class configuration.

        Existing proposals keep their snapshot; only proposals created
        afterwards use the new classes.
        """
        with self._lock:
            try:
                self._require_governor(caller_id)
                previous = self._config
                config_hash = self._registry.set_classes(classes)
            except GovernanceError as e:
                return _failure(e)

            self._config = previous.replace(classes=self._registry.get_classes())

            def _rollback() -> None:
                self._config = previous
                self._registry.set_classes(previous.classes)

            err = self._record_event(
                EventKind.CLASSES_REPLACED,
                caller_id,
                {
                    "config_hash": config_hash,
                    "classes": [class_to_record(c) for c in self._config.classes],
                    "config_version": self._config.version,
                },
                now,
            )
            if err:
                _rollback()
                return ServiceResult(success=False, errors=[err])

            logger.info(
                "Voting classes replaced (%d classes, %s)", len(classes), config_hash
            )
            return self._committed({
                "config_hash": config_hash,
                "config_version": self._config.version,
            })

    def set_quorum(
        self,
        caller_id: str,
        quorum_pct: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Set the minimum winning score (1..100)."""
        with self._lock:
            try:
                self._require_governor(caller_id)
                if not 1 <= quorum_pct <= 100:
                    raise ValidationError(
                        f"quorum_pct must be in [1, 100], got {quorum_pct}"
                    )
            except GovernanceError as e:
                return _failure(e)
            return self._swap_config(
                self._config.replace(quorum_pct=quorum_pct),
                EventKind.QUORUM_SET,
                caller_id,
                {"quorum_pct": quorum_pct},
                now,
            )

    def set_target_allowed(
        self,
        caller_id: str,
        target: str,
        allowed: bool,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Add or remove a batch call target from the allow-list."""
        with self._lock:
            try:
                self._require_governor(caller_id)
                if not target:
                    raise ValidationError("Target must not be empty")
                if target == self._resolver.self_address:
                    raise ValidationError(
                        "The governance engine cannot allow-list itself"
                    )
            except GovernanceError as e:
                return _failure(e)
            targets = set(self._config.allowed_targets)
            if allowed:
                targets.add(target)
            else:
                targets.discard(target)
            return self._swap_config(
                self._config.replace(allowed_targets=frozenset(targets)),
                EventKind.TARGET_ALLOWED,
                caller_id,
                {"target": target, "allowed": allowed},
                now,
            )

    def set_creator_capability(
        self,
        caller_id: str,
        capability_id: str,
        allowed: bool,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Grant or withdraw proposal creation for holders of a capability."""
        with self._lock:
            try:
                self._require_governor(caller_id)
                if not capability_id:
                    raise ValidationError("Capability id must not be empty")
            except GovernanceError as e:
                return _failure(e)
            caps = set(self._config.creator_capabilities)
            if allowed:
                caps.add(capability_id)
            else:
                caps.discard(capability_id)
            return self._swap_config(
                self._config.replace(creator_capabilities=frozenset(caps)),
                EventKind.CREATOR_CAPABILITY_SET,
                caller_id,
                {"capability_id": capability_id, "allowed": allowed},
                now,
            )

    def set_dispatcher(
        self,
        caller_id: str,
        dispatcher: ActionDispatcher,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Reassign the action dispatcher used for winning batches."""
        with self._lock:
            try:
                self._require_governor(caller_id)
            except GovernanceError as e:
                return _failure(e)
            previous = self._dispatcher
            self._dispatcher = dispatcher
            err = self._record_event(
                EventKind.DISPATCHER_UPDATED,
                caller_id,
                {"dispatcher": type(dispatcher).__name__},
                now,
            )
            if err:
                self._dispatcher = previous
                return ServiceResult(success=False, errors=[err])
            return ServiceResult(success=True)

    # ------------------------------------------------------------------
    # Proposals and voting
    # ------------------------------------------------------------------

    def create_proposal(
        self,
        creator_id: str,
        title: str,
        description_ref: str,
        duration_minutes: int,
        option_count: int,
        batches: Optional[Sequence[Sequence[Call]]] = None,
        poll_gate_ids: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Create a proposal snapshotting the current class configuration.

        The creator must be the governor or hold one of the configured
        creator capabilities.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        with self._lock:
            try:
                self._require_creator(creator_id)
                proposal = self._lifecycle.create_proposal(
                    creator_id=creator_id,
                    title=title,
                    description_ref=description_ref,
                    duration_minutes=duration_minutes,
                    option_count=option_count,
                    classes_snapshot=self._registry.snapshot(),
                    allowed_targets=self._config.allowed_targets,
                    batches=batches,
                    poll_gate_ids=poll_gate_ids,
                    now=now,
                )
            except GovernanceError as e:
                return _failure(e)

            err = self._record_event(
                EventKind.PROPOSAL_CREATED,
                creator_id,
                {
                    "proposal_id": proposal.proposal_id,
                    "title": proposal.title,
                    "description_ref": proposal.description_ref,
                    "option_count": len(proposal.options),
                    "duration_minutes": duration_minutes,
                    "end_utc": proposal.end_utc.isoformat(),
                    "classes_hash": classes_hash(proposal.classes_snapshot),
                    "restricted": proposal.restricted,
                    "poll_gate_ids": sorted(proposal.poll_gate_ids),
                    "batch_sizes": [len(o.batch) for o in proposal.options],
                },
                now,
            )
            if err:
                self._lifecycle.discard_latest(proposal.proposal_id)
                return ServiceResult(success=False, errors=[err])

            return self._committed({
                "proposal_id": proposal.proposal_id,
                "end_utc": proposal.end_utc.isoformat(),
                "restricted": proposal.restricted,
            })

    def vote(
        self,
        proposal_id: int,
        voter_id: str,
        indices: Sequence[int],
        weights: Sequence[int],
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Cast ``voter_id``'s single weighted vote on a proposal."""
        if now is None:
            now = datetime.now(timezone.utc)
        with self._lock:
            try:
                proposal = self._lifecycle.get(proposal_id)
                prev_totals = list(proposal.class_totals_raw)
                prev_rows = [list(o.class_raw) for o in proposal.options]
                receipt = self._tally.vote(
                    proposal,
                    voter_id,
                    indices,
                    weights,
                    privileged_id=self._config.governor_id,
                    now=now,
                )
            except GovernanceError as e:
                return _failure(e)

            err = self._record_event(
                EventKind.VOTE_CAST,
                voter_id,
                {
                    "proposal_id": proposal_id,
                    "indices": list(receipt.indices),
                    "weights": list(receipt.weights),
                    "class_powers": list(receipt.class_powers),
                },
                now,
            )
            if err:
                proposal.class_totals_raw[:] = prev_totals
                for option, row in zip(proposal.options, prev_rows):
                    option.class_raw[:] = row
                proposal.voted.discard(voter_id)
                return ServiceResult(success=False, errors=[err])

            return self._committed({
                "proposal_id": proposal_id,
                "voter_id": voter_id,
                "class_powers": list(receipt.class_powers),
            })

    def announce_winner(
        self,
        proposal_id: int,
        caller_id: str = "system",
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Resolve a closed proposal.

        The first successful call records the outcome and may dispatch
        the winning batch. Later calls return the recorded outcome.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        with self._lock:
            try:
                proposal = self._lifecycle.get(proposal_id)
                report = self._winner_resolver.announce_winner(
                    proposal,
                    quorum_pct=self._config.quorum_pct,
                    allowed_targets=self._config.allowed_targets,
                    dispatcher=self._dispatcher,
                    now=now,
                )
            except GovernanceError as e:
                return _failure(e)

            resolution = report.resolution
            data: dict[str, Any] = {
                "proposal_id": proposal_id,
                "winner_index": resolution.winner_index,
                "valid": resolution.valid,
                "executed": resolution.executed,
                "hi": resolution.hi,
                "second": resolution.second,
                "scores": list(resolution.scores),
                "already_resolved": report.already_resolved,
            }
            if resolution.execution_error:
                data["execution_error"] = resolution.execution_error
            if report.already_resolved:
                return ServiceResult(success=True, data=data)

            # The outcome (and any dispatch) is final; audit failures
            # from here on are warnings, not rollbacks.
            warnings = []
            err = self._record_event(
                EventKind.WINNER_ANNOUNCED,
                caller_id,
                {k: v for k, v in data.items() if k != "already_resolved"},
                now,
            )
            if err:
                warnings.append(err)
            if resolution.valid and proposal.options[resolution.winner_index].batch:
                if resolution.executed:
                    kind = EventKind.PROPOSAL_EXECUTED
                    payload = {
                        "proposal_id": proposal_id,
                        "winner_index": resolution.winner_index,
                        "call_count": len(proposal.options[resolution.winner_index].batch),
                    }
                else:
                    kind = EventKind.EXECUTION_SKIPPED
                    payload = {
                        "proposal_id": proposal_id,
                        "winner_index": resolution.winner_index,
                        "reason": resolution.execution_error,
                    }
                    logger.warning(
                        "Winning batch of proposal %s not executed: %s",
                        proposal_id, resolution.execution_error,
                    )
                err = self._record_event(kind, caller_id, payload, now)
                if err:
                    warnings.append(err)

            result = self._committed(data)
            if warnings:
                result.data["audit_warning"] = "; ".join(warnings)
            return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_classes(self) -> tuple[VotingClass, ...]:
        with self._lock:
            return self._registry.get_classes()

    def get_proposal_classes(self, proposal_id: int) -> tuple[VotingClass, ...]:
        with self._lock:
            return self._lifecycle.get(proposal_id).classes_snapshot

    def get_proposal(self, proposal_id: int) -> Optional[Proposal]:
        with self._lock:
            try:
                return self._lifecycle.get(proposal_id)
            except GovernanceError:
                return None

    @property
    def proposal_count(self) -> int:
        with self._lock:
            return self._lifecycle.count

    def has_voted(self, proposal_id: int, account: str) -> bool:
        with self._lock:
            proposal = self.get_proposal(proposal_id)
            return proposal is not None and account in proposal.voted

    def option_scores(self, proposal_id: int) -> list[int]:
        """Current combined score per option (a live preview while open)."""
        with self._lock:
            return compute_scores(self._lifecycle.get(proposal_id))

    def status(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """Return system-wide status summary."""
        if now is None:
            now = datetime.now(timezone.utc)
        with self._lock:
            return self._status(now)

    def _status(self, now: datetime) -> dict[str, Any]:
        by_status: dict[str, int] = {s.value: 0 for s in ProposalStatus}
        for p in self._lifecycle.all():
            by_status[p.status(now).value] += 1
        return {
            "version": __version__,
            "config": {
                "version": self._config.version,
                "governor_id": self._config.governor_id,
                "quorum_pct": self._config.quorum_pct,
                "class_count": len(self._config.classes),
                "classes_hash": self._registry.config_hash,
                "allowed_targets": sorted(self._config.allowed_targets),
                "creator_capabilities": sorted(self._config.creator_capabilities),
            },
            "proposals": {
                "total": self._lifecycle.count,
                "by_status": by_status,
            },
            "events": self._event_log.count if self._event_log is not None else 0,
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_governor(self, caller_id: str) -> None:
        if caller_id != self._config.governor_id:
            raise AuthorizationError(f"Only the governor may do this (caller: {caller_id})")

    def _require_creator(self, caller_id: str) -> None:
        if caller_id == self._config.governor_id:
            return
        caps = self._config.creator_capabilities
        if caps and self._holds_any(caller_id, sorted(caps)):
            return
        raise AuthorizationError(f"Account {caller_id} may not create proposals")

    def _holds_any(self, account: str, capability_ids: Iterable[str]) -> bool:
        return self._capabilities.holds_any(account, capability_ids)

    def _balance_of(self, asset: str, account: str) -> int:
        try:
            return self._balances.balance_of(asset, account)
        except LookupError as e:
            raise ValidationError(str(e)) from e

    def _swap_config(
        self,
        new_config: GlobalConfig,
        kind: EventKind,
        caller_id: str,
        payload: dict[str, Any],
        now: Optional[datetime],
    ) -> ServiceResult:
        """Install ``new_config`` and audit it; roll back on audit failure."""
        previous = self._config
        self._config = new_config
        err = self._record_event(
            kind, caller_id, {**payload, "config_version": new_config.version}, now
        )
        if err:
            self._config = previous
            return ServiceResult(success=False, errors=[err])
        return self._committed({"config_version": new_config.version})

    def _committed(self, data: dict[str, Any]) -> ServiceResult:
        warning = self._safe_persist_post_audit()
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _record_event(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        """Append an audit event. Returns an error string or None."""
        if self._event_log is None:
            return None
        try:
            event = EventRecord.create(
                event_id=self._next_event_id(),
                event_kind=kind,
                actor_id=actor_id,
                payload=payload,
                timestamp_utc=now,
            )
            self._event_log.append(event)
        except (ValueError, OSError) as e:
            return f"Event log failure: {e}"
        return None

    def _persist_state(self) -> None:
        """Persist current state to the state store (if wired)."""
        if self._state_store is None:
            return
        self._state_store.save(self._config, self._lifecycle.to_records())

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after audit events have been committed.

        Never rolls back: the audit trail is already durable. On failure
        the StateStore is stale, the degraded flag is set and a warning
        is returned.
        """
        try:
            self._persist_state()
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.warning("State persistence degraded: %s", e)
            return f"Persistence degraded: {e}; state committed in audit trail but StateStore is stale"
