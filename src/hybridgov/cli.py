"""hybridgov CLI: command-line interface for the hybrid voting engine.

Usage:
    python -m hybridgov.cli status
    python -m hybridgov.cli show-classes
    python -m hybridgov.cli set-classes --caller governor --classes-json classes.json
    python -m hybridgov.cli create-proposal --creator governor --title "Fund audit" --options 2
    python -m hybridgov.cli vote --proposal 0 --voter alice --option 0:60 --option 1:40
    python -m hybridgov.cli announce --proposal 0
    python -m hybridgov.cli check-invariants

Capabilities and balances for the in-memory oracles are read from
<data>/oracles.json:
    {"capabilities": {"alice": ["member"]},
     "balances": {"participation_token": {"alice": 10000}}}
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from hybridgov.integration.balances import BalanceLedger, BalanceRegistry
from hybridgov.integration.capabilities import CapabilityRegistry
from hybridgov.integration.dispatch import RecordingDispatcher
from hybridgov.models.proposal import Call
from hybridgov.models.voting_class import class_from_record, class_to_record
from hybridgov.persistence.event_log import EventLog
from hybridgov.persistence.state_store import StateStore
from hybridgov.policy.resolver import PolicyResolver
from hybridgov.service import HybridVotingService, ServiceResult


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"


def _load_oracles(data_dir: Path) -> tuple[CapabilityRegistry, BalanceRegistry]:
    path = data_dir / "oracles.json"
    oracles = {}
    if path.exists():
        with path.open("r", encoding="utf-8") as f:
            oracles = json.load(f)
    capabilities = CapabilityRegistry(oracles.get("capabilities", {}))
    balances = BalanceRegistry()
    for asset, holdings in oracles.get("balances", {}).items():
        balances.register(asset, BalanceLedger({a: int(v) for a, v in holdings.items()}))
    return capabilities, balances


def _make_service(config_dir: Path, data_dir: Path) -> HybridVotingService:
    """Create a HybridVotingService with durable persistence."""
    data_dir.mkdir(parents=True, exist_ok=True)
    resolver = PolicyResolver.from_config_dir(config_dir)
    capabilities, balances = _load_oracles(data_dir)
    return HybridVotingService(
        resolver,
        capabilities,
        balances,
        dispatcher=RecordingDispatcher(),
        event_log=EventLog(storage_path=data_dir / "events.jsonl"),
        state_store=StateStore(storage_path=data_dir / "state.json"),
    )


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, default=str))
        return 0
    print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def _parse_choice(text: str) -> tuple[int, int]:
    """Parse an ``index:weight`` pair."""
    try:
        index, weight = text.split(":", 1)
        return int(index), int(weight)
    except ValueError as e:
        raise argparse.ArgumentTypeError(
            f"Expected INDEX:WEIGHT, got {text!r}"
        ) from e


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_show_classes(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    if args.proposal is None:
        classes = service.get_classes()
    else:
        proposal = service.get_proposal(args.proposal)
        if proposal is None:
            print(f"Failed: Proposal not found: {args.proposal}", file=sys.stderr)
            return 1
        classes = proposal.classes_snapshot
    print(json.dumps([class_to_record(c) for c in classes], indent=2))
    return 0


def cmd_set_classes(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    with args.classes_json.open("r", encoding="utf-8") as f:
        records = json.load(f)
    try:
        classes = [class_from_record(r) for r in records]
    except (KeyError, ValueError) as e:
        print(f"Failed: invalid class record: {e}", file=sys.stderr)
        return 1
    return _report(service.set_classes(args.caller, classes))


def cmd_create_proposal(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    batches = None
    if args.batches_json is not None:
        with args.batches_json.open("r", encoding="utf-8") as f:
            raw = json.load(f)
        batches = [
            [
                Call(target=c["target"], value=int(c.get("value", 0)), payload=c.get("payload", ""))
                for c in batch
            ]
            for batch in raw
        ]
    return _report(service.create_proposal(
        creator_id=args.creator,
        title=args.title,
        description_ref=args.description,
        duration_minutes=args.duration,
        option_count=args.options,
        batches=batches,
        poll_gate_ids=args.gate or None,
    ))


def cmd_vote(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    indices = [i for i, _ in args.option]
    weights = [w for _, w in args.option]
    return _report(service.vote(args.proposal, args.voter, indices, weights))


def cmd_announce(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.data)
    return _report(service.announce_winner(args.proposal, caller_id=args.caller))


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run configuration invariant checks."""
    tools_dir = Path(__file__).resolve().parents[2] / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check
    return check(args.config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hybridgov",
        description="Multi-class weighted governance tally engine",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data",
        type=Path,
        default=DEFAULT_DATA,
        help="Path to data directory (default: data/)",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show system status")

    p_show = sub.add_parser("show-classes", help="Show voting classes")
    p_show.add_argument("--proposal", type=int, help="Show a proposal's snapshot instead")

    p_set = sub.add_parser("set-classes", help="Replace the voting class list")
    p_set.add_argument("--caller", required=True, help="Caller account (must be governor)")
    p_set.add_argument("--classes-json", type=Path, required=True, help="JSON list of classes")

    p_create = sub.add_parser("create-proposal", help="Create a proposal")
    p_create.add_argument("--creator", required=True, help="Creator account")
    p_create.add_argument("--title", required=True, help="Proposal title")
    p_create.add_argument("--description", default="", help="Description reference")
    p_create.add_argument("--duration", type=int, default=60, help="Voting window in minutes")
    p_create.add_argument("--options", type=int, required=True, help="Number of options")
    p_create.add_argument("--batches-json", type=Path, help="JSON list of per-option batches")
    p_create.add_argument(
        "--gate", action="append", default=[],
        help="Poll-level capability gate (repeatable)",
    )

    p_vote = sub.add_parser("vote", help="Cast a weighted vote")
    p_vote.add_argument("--proposal", type=int, required=True, help="Proposal id")
    p_vote.add_argument("--voter", required=True, help="Voter account")
    p_vote.add_argument(
        "--option", type=_parse_choice, action="append", required=True,
        help="INDEX:WEIGHT (repeatable, weights sum to 100)",
    )

    p_ann = sub.add_parser("announce", help="Announce the winner of a closed proposal")
    p_ann.add_argument("--proposal", type=int, required=True, help="Proposal id")
    p_ann.add_argument("--caller", default="system", help="Caller account")

    sub.add_parser("check-invariants", help="Run configuration invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "show-classes": cmd_show_classes,
        "set-classes": cmd_set_classes,
        "create-proposal": cmd_create_proposal,
        "vote": cmd_vote,
        "announce": cmd_announce,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
