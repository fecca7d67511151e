"""Durable state store: JSON snapshot of configuration and proposals.

The event log is the audit trail; the state store is the fast path for
restarting the service without replaying every event. The whole state
is written to a temporary file and moved into place, so a crash never
leaves a half-written state file behind.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from hybridgov.models.config import GlobalConfig

logger = logging.getLogger(__name__)

STATE_FORMAT_VERSION = 1


class StateStore:
    """JSON-file persistence for GlobalConfig and proposal records."""

    def __init__(self, storage_path: Path) -> None:
        self._path = storage_path
        self._state: dict[str, Any] = {
            "format_version": STATE_FORMAT_VERSION,
            "config": None,
            "proposals": [],
        }
        if storage_path.exists():
            self._state = self._read(storage_path)

    def load_config(self) -> Optional[GlobalConfig]:
        record = self._state.get("config")
        if record is None:
            return None
        return GlobalConfig.from_record(record)

    def load_proposals(self) -> list[dict[str, Any]]:
        return list(self._state.get("proposals", []))

    def save(self, config: GlobalConfig, proposals: list[dict[str, Any]]) -> None:
        """Replace the stored state.

        Raises:
            OSError: If the state file cannot be written.
        """
        state = {
            "format_version": STATE_FORMAT_VERSION,
            "config": config.to_record(),
            "proposals": proposals,
        }
        self._write(state)
        self._state = state

    def _write(self, state: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(state, f, indent=2, sort_keys=True)
        os.replace(tmp, self._path)
        logger.debug("State written to %s (%d proposals)", self._path, len(state["proposals"]))

    @staticmethod
    def _read(path: Path) -> dict[str, Any]:
        with path.open("r", encoding="utf-8") as f:
            state = json.load(f)
        version = state.get("format_version")
        if version != STATE_FORMAT_VERSION:
            raise ValueError(
                f"Unsupported state format version {version} in {path} "
                f"(expected {STATE_FORMAT_VERSION})"
            )
        return state
