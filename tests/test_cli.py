"""Tests for hybridgov CLI — proves CLI dispatches correctly."""

import json
from pathlib import Path

import pytest

from hybridgov.cli import build_parser, main
from hybridgov.policy.resolver import ENV_GOVERNOR, ENV_QUORUM


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(ENV_QUORUM, raising=False)
    monkeypatch.delenv(ENV_GOVERNOR, raising=False)


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    oracles = {
        "capabilities": {"alice": ["member", "proposal_creator"], "bob": ["member"]},
        "balances": {"participation_token": {"alice": 10000, "bob": 2500}},
    }
    (tmp_path / "oracles.json").write_text(json.dumps(oracles), encoding="utf-8")
    return tmp_path


def _run(data_dir: Path, *argv: str) -> int:
    return main(["--data", str(data_dir), *argv])


class TestCLIParsing:
    def test_status_command(self) -> None:
        args = build_parser().parse_args(["status"])
        assert args.command == "status"

    def test_create_proposal_command(self) -> None:
        args = build_parser().parse_args([
            "create-proposal", "--creator", "alice",
            "--title", "Budget", "--options", "3",
            "--gate", "member", "--gate", "council",
        ])
        assert args.command == "create-proposal"
        assert args.options == 3
        assert args.duration == 60
        assert args.gate == ["member", "council"]

    def test_vote_command_parses_choices(self) -> None:
        args = build_parser().parse_args([
            "vote", "--proposal", "0", "--voter", "bob",
            "--option", "0:60", "--option", "1:40",
        ])
        assert args.option == [(0, 60), (1, 40)]

    def test_bad_choice_rejected(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([
                "vote", "--proposal", "0", "--voter", "bob", "--option", "sixty",
            ])


class TestCLIExecution:
    def test_no_command_shows_help(self) -> None:
        assert main([]) == 0

    def test_check_invariants_runs(self) -> None:
        assert main(["check-invariants"]) == 0

    def test_status_runs(self, data_dir: Path, capsys: pytest.CaptureFixture) -> None:
        assert _run(data_dir, "status") == 0
        status = json.loads(capsys.readouterr().out)
        assert status["config"]["governor_id"] == "governor"
        assert (data_dir / "events.jsonl").exists()

    def test_show_classes(self, data_dir: Path, capsys: pytest.CaptureFixture) -> None:
        assert _run(data_dir, "show-classes") == 0
        classes = json.loads(capsys.readouterr().out)
        assert [c["strategy"] for c in classes] == ["direct", "balance_weighted"]

    def test_show_classes_unknown_proposal(self, data_dir: Path) -> None:
        assert _run(data_dir, "show-classes", "--proposal", "3") == 1

    def test_proposal_flow_e2e(self, data_dir: Path, capsys: pytest.CaptureFixture) -> None:
        assert _run(
            data_dir, "create-proposal", "--creator", "alice",
            "--title", "CLI proposal", "--options", "2",
        ) == 0
        assert _run(
            data_dir, "vote", "--proposal", "0", "--voter", "bob",
            "--option", "0:60", "--option", "1:40",
        ) == 0
        capsys.readouterr()
        # Still inside the voting window
        assert _run(data_dir, "announce", "--proposal", "0") == 1
        assert _run(data_dir, "status") == 0
        status = json.loads(capsys.readouterr().out)
        assert status["proposals"]["total"] == 1
        assert status["proposals"]["by_status"]["open"] == 1

    def test_double_vote_fails(self, data_dir: Path) -> None:
        _run(data_dir, "create-proposal", "--creator", "governor", "--title", "T", "--options", "2")
        assert _run(data_dir, "vote", "--proposal", "0", "--voter", "bob", "--option", "0:100") == 0
        assert _run(data_dir, "vote", "--proposal", "0", "--voter", "bob", "--option", "1:100") == 1

    def test_unauthorised_creator_fails(self, data_dir: Path) -> None:
        assert _run(
            data_dir, "create-proposal", "--creator", "bob", "--title", "T", "--options", "2",
        ) == 1

    def test_set_classes_from_file(self, data_dir: Path, tmp_path: Path) -> None:
        classes_file = tmp_path / "classes.json"
        classes_file.write_text(
            json.dumps([{"strategy": "direct", "slice_pct": 100}]), encoding="utf-8",
        )
        assert _run(
            data_dir, "set-classes", "--caller", "governor",
            "--classes-json", str(classes_file),
        ) == 0
        assert _run(
            data_dir, "set-classes", "--caller", "alice",
            "--classes-json", str(classes_file),
        ) == 1

    def test_create_with_batches(self, data_dir: Path, tmp_path: Path) -> None:
        batches_file = tmp_path / "batches.json"
        batches_file.write_text(
            json.dumps([[{"target": "treasury", "value": 5}], []]), encoding="utf-8",
        )
        assert _run(
            data_dir, "create-proposal", "--creator", "governor", "--title", "Pay",
            "--options", "2", "--batches-json", str(batches_file),
        ) == 0
        bad_file = tmp_path / "bad.json"
        bad_file.write_text(json.dumps([[{"target": "elsewhere"}], []]), encoding="utf-8")
        assert _run(
            data_dir, "create-proposal", "--creator", "governor", "--title", "Pay",
            "--options", "2", "--batches-json", str(bad_file),
        ) == 1
