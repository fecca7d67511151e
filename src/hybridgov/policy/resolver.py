"""Policy resolver: loads governance parameters from the config directory.

The parameter file (config/governance_params.json) defines the initial
class configuration, quorum, execution allow-list, proposal-creator
capabilities, the governor principal and the structural limits.

A deployment may override the quorum and governor without editing the
file, through HYBRIDGOV_* variables in the process environment or in a
.env file beside the config directory.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import dotenv_values

from hybridgov.governance.class_registry import validate_classes
from hybridgov.models.config import GlobalConfig, GovernanceLimits
from hybridgov.models.voting_class import VotingClass, class_from_record

PARAMS_FILE = "governance_params.json"
ENV_QUORUM = "HYBRIDGOV_QUORUM_PCT"
ENV_GOVERNOR = "HYBRIDGOV_GOVERNOR_ID"


class PolicyResolver:
    """Resolved view over the governance parameter file."""

    def __init__(
        self,
        params: dict[str, Any],
        env: Optional[dict[str, str]] = None,
    ) -> None:
        self._params = params
        env = env or {}

        self._limits = GovernanceLimits(**params.get("limits", {}))
        self._governor_id = env.get(ENV_GOVERNOR) or params["governor_id"]
        if not self._governor_id:
            raise ValueError("governor_id must not be empty")

        quorum_raw = env.get(ENV_QUORUM)
        self._quorum_pct = int(quorum_raw) if quorum_raw else int(params["quorum_pct"])
        if not 1 <= self._quorum_pct <= 100:
            raise ValueError(f"quorum_pct must be in [1, 100], got {self._quorum_pct}")

        self._classes = tuple(class_from_record(c) for c in params.get("classes", []))
        validate_classes(self._classes, self._limits.max_classes)

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load parameters from ``config_dir`` and apply overrides.

        Process environment wins over the .env file.
        """
        with (config_dir / PARAMS_FILE).open("r", encoding="utf-8") as f:
            params = json.load(f)
        env: dict[str, str] = {}
        dotenv_path = config_dir.parent / ".env"
        if dotenv_path.exists():
            env.update({k: v for k, v in dotenv_values(dotenv_path).items() if v is not None})
        for key in (ENV_QUORUM, ENV_GOVERNOR):
            if os.environ.get(key):
                env[key] = os.environ[key]
        return cls(params, env)

    @property
    def limits(self) -> GovernanceLimits:
        return self._limits

    @property
    def governor_id(self) -> str:
        return self._governor_id

    @property
    def quorum_pct(self) -> int:
        return self._quorum_pct

    @property
    def self_address(self) -> str:
        return self._params.get("self_address", "")

    def classes(self) -> tuple[VotingClass, ...]:
        return self._classes

    def initial_config(self) -> GlobalConfig:
        """The GlobalConfig a fresh service starts from."""
        return GlobalConfig(
            governor_id=self._governor_id,
            quorum_pct=self._quorum_pct,
            classes=self._classes,
            allowed_targets=frozenset(self._params.get("allowed_targets", [])),
            creator_capabilities=frozenset(self._params.get("creator_capabilities", [])),
        )
