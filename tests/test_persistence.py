"""Tests for the event log and state store — proves durability and tamper detection."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from hybridgov.integration.balances import BalanceLedger, BalanceRegistry
from hybridgov.integration.capabilities import CapabilityRegistry
from hybridgov.models.config import GlobalConfig
from hybridgov.models.voting_class import BalanceWeightedClass, DirectClass
from hybridgov.persistence.event_log import EventKind, EventLog, EventRecord
from hybridgov.persistence.state_store import StateStore
from hybridgov.policy.resolver import ENV_GOVERNOR, ENV_QUORUM, PolicyResolver
from hybridgov.service import HybridVotingService


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _event(event_id: str, kind: EventKind = EventKind.VOTE_CAST) -> EventRecord:
    return EventRecord.create(
        event_id=event_id,
        event_kind=kind,
        actor_id="alice",
        payload={"proposal_id": 0, "indices": [0], "weights": [100]},
        timestamp_utc=NOW,
    )


class TestEventLog:
    def test_append_and_filter(self) -> None:
        log = EventLog()
        log.append(_event("EVT-1"))
        log.append(_event("EVT-2", EventKind.WINNER_ANNOUNCED))
        assert log.count == 2
        assert [e.event_id for e in log.events(EventKind.VOTE_CAST)] == ["EVT-1"]
        assert [e.event_id for e in log.events()] == ["EVT-1", "EVT-2"]

    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        log.append(_event("EVT-1"))
        with pytest.raises(ValueError):
            log.append(_event("EVT-1"))
        assert log.count == 1

    def test_hash_is_deterministic(self) -> None:
        assert _event("EVT-1").event_hash == _event("EVT-1").event_hash
        assert _event("EVT-1").event_hash != _event("EVT-2").event_hash

    def test_jsonl_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.append(_event("EVT-1"))
        log.append(_event("EVT-2"))
        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.events() == log.events()

    def test_tampered_record_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_event("EVT-1"))
        record = json.loads(path.read_text(encoding="utf-8"))
        record["payload"]["weights"] = [0]
        path.write_text(json.dumps(record) + "\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Integrity check failed"):
            EventLog(storage_path=path)

    def test_duplicate_on_recovery_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_event("EVT-1"))
        line = path.read_text(encoding="utf-8")
        path.write_text(line + line, encoding="utf-8")
        with pytest.raises(ValueError, match="Duplicate event ID"):
            EventLog(storage_path=path)


class TestStateStore:
    def test_empty_store(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path / "state.json")
        assert store.load_config() is None
        assert store.load_proposals() == []

    def test_config_round_trip(self, tmp_path: Path) -> None:
        config = GlobalConfig(
            governor_id="governor",
            quorum_pct=60,
            classes=(
                DirectClass(slice_pct=30, gate_ids=frozenset({"member"})),
                BalanceWeightedClass(slice_pct=70, asset="tok", quadratic=True),
            ),
            allowed_targets=frozenset({"treasury"}),
            creator_capabilities=frozenset({"proposal_creator"}),
            version=4,
        )
        path = tmp_path / "state.json"
        StateStore(path).save(config, [])
        assert StateStore(path).load_config() == config

    def test_unknown_format_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"format_version": 99}), encoding="utf-8")
        with pytest.raises(ValueError, match="Unsupported state format"):
            StateStore(path)

    def test_no_temp_file_left(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        StateStore(path).save(GlobalConfig(governor_id="g", quorum_pct=50), [])
        assert sorted(p.name for p in tmp_path.iterdir()) == ["state.json"]


class TestServiceRestart:
    @pytest.fixture
    def resolver(self, monkeypatch: pytest.MonkeyPatch) -> PolicyResolver:
        monkeypatch.delenv(ENV_QUORUM, raising=False)
        monkeypatch.delenv(ENV_GOVERNOR, raising=False)
        return PolicyResolver.from_config_dir(CONFIG_DIR)

    def _service(self, resolver: PolicyResolver, data_dir: Path) -> HybridVotingService:
        capabilities = CapabilityRegistry({"alice": ["member"]})
        balances = BalanceRegistry({
            "participation_token": BalanceLedger({"alice": 400}),
        })
        return HybridVotingService(
            resolver,
            capabilities,
            balances,
            event_log=EventLog(storage_path=data_dir / "events.jsonl"),
            state_store=StateStore(data_dir / "state.json"),
        )

    def test_state_survives_restart(self, resolver: PolicyResolver, tmp_path: Path) -> None:
        first = self._service(resolver, tmp_path)
        first.set_quorum("governor", 70, now=NOW)
        pid = first.create_proposal("governor", "Budget", "", 60, 3, now=NOW).data["proposal_id"]
        first.vote(pid, "alice", [2], [100], now=NOW + timedelta(minutes=1))

        second = self._service(resolver, tmp_path)
        assert second.config.quorum_pct == 70
        assert second.config.version == 1
        assert second.proposal_count == 1
        assert second.has_voted(pid, "alice")
        assert second.get_proposal(pid).options[2].class_raw == [100, 2000]

    def test_restart_does_not_reinitialise(self, resolver: PolicyResolver, tmp_path: Path) -> None:
        self._service(resolver, tmp_path).create_proposal("governor", "T", "", 60, 2, now=NOW)
        second = self._service(resolver, tmp_path)
        second.create_proposal("governor", "U", "", 60, 2, now=NOW)
        log = EventLog(storage_path=tmp_path / "events.jsonl")
        assert len(log.events(EventKind.CLASSES_INITIALISED)) == 1
        assert [e.event_id for e in log.events()] == [
            "EVT-00000001", "EVT-00000002", "EVT-00000003",
        ]

    def test_double_vote_rejected_after_restart(
        self, resolver: PolicyResolver, tmp_path: Path,
    ) -> None:
        first = self._service(resolver, tmp_path)
        pid = first.create_proposal("governor", "T", "", 60, 2, now=NOW).data["proposal_id"]
        first.vote(pid, "alice", [0], [100], now=NOW)
        second = self._service(resolver, tmp_path)
        result = second.vote(pid, "alice", [1], [100], now=NOW)
        assert result.data["error_kind"] == "state"

    def test_resolution_survives_restart(self, resolver: PolicyResolver, tmp_path: Path) -> None:
        first = self._service(resolver, tmp_path)
        pid = first.create_proposal("governor", "T", "", 60, 2, now=NOW).data["proposal_id"]
        first.vote(pid, "alice", [1], [100], now=NOW)
        announced = first.announce_winner(pid, now=NOW + timedelta(hours=2))
        second = self._service(resolver, tmp_path)
        again = second.announce_winner(pid, now=NOW + timedelta(hours=3))
        assert again.data["already_resolved"] is True
        assert again.data["winner_index"] == announced.data["winner_index"] == 1
