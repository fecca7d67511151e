#!/usr/bin/env python3
"""Invariant checks against the governance parameter file."""

import json
import sys
from pathlib import Path
from typing import Optional


ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = ROOT / "config"
PARAMS_FILE = "governance_params.json"

STRATEGIES = ("direct", "balance_weighted")


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check_classes(classes: list, max_classes: int, errors: list[str]) -> None:
    """Validate the initial class list shares the registry's structural rules."""
    if not 1 <= len(classes) <= max_classes:
        errors.append(f"class count must be in [1, {max_classes}], got {len(classes)}")
    total = 0
    for i, vc in enumerate(classes):
        strategy = vc.get("strategy")
        if strategy not in STRATEGIES:
            errors.append(f"classes[{i}].strategy must be one of {STRATEGIES}")
        slice_pct = vc.get("slice_pct", 0)
        if not isinstance(slice_pct, int) or not 1 <= slice_pct <= 100:
            errors.append(f"classes[{i}].slice_pct must be an integer in [1, 100]")
        else:
            total += slice_pct
        if strategy == "balance_weighted":
            if not vc.get("asset"):
                errors.append(f"classes[{i}] is balance_weighted but has no asset")
            if vc.get("min_balance", 0) < 0:
                errors.append(f"classes[{i}].min_balance must be >= 0")
    if total != 100:
        errors.append(f"class slices must sum to 100, got {total}")


def check(config_dir: Optional[Path] = None) -> int:
    params = load_json((config_dir or CONFIG_DIR) / PARAMS_FILE)
    errors: list[str] = []

    limits = params.get("limits", {})
    max_classes = limits.get("max_classes", 8)

    # --- Structural limits ---
    if not 1 <= max_classes <= 8:
        errors.append(f"limits.max_classes must be in [1, 8], got {max_classes}")
    if not 1 <= limits.get("max_options", 50) <= 50:
        errors.append("limits.max_options must be in [1, 50]")
    if not 1 <= limits.get("max_calls", 20) <= 20:
        errors.append("limits.max_calls must be in [1, 20]")
    min_d = limits.get("min_duration_minutes", 10)
    max_d = limits.get("max_duration_minutes", 43200)
    if not 1 <= min_d <= max_d:
        errors.append("limits must satisfy 1 <= min_duration_minutes <= max_duration_minutes")
    if limits.get("accumulator_bits", 128) < 8:
        errors.append("limits.accumulator_bits must be >= 8")

    # --- Governance invariants ---
    quorum = params.get("quorum_pct", 0)
    if not isinstance(quorum, int) or not 1 <= quorum <= 100:
        errors.append(f"quorum_pct must be an integer in [1, 100], got {quorum}")
    if not params.get("governor_id"):
        errors.append("governor_id must not be empty")
    self_address = params.get("self_address", "")
    if self_address and self_address in params.get("allowed_targets", []):
        errors.append("allowed_targets must not contain self_address")

    check_classes(params.get("classes", []), max_classes, errors)

    if errors:
        print("Invariant check FAILED:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    sys.exit(check())
