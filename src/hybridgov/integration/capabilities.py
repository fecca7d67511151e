"""Capability provider contract.

The engine never issues or revokes capabilities. It only asks whether
an account currently holds one, at the moment of the call, with no
caching across calls.
"""

from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable


@runtime_checkable
class CapabilityProvider(Protocol):
    """Answers "does this account hold capability X"."""

    def holds(self, account: str, capability_id: str) -> bool:
        ...

    def holds_any(self, account: str, capability_ids: Iterable[str]) -> bool:
        """True if the account holds at least one of ``capability_ids``."""
        ...


class CapabilityRegistry:
    """In-memory CapabilityProvider, used by tests and the CLI."""

    def __init__(self, grants: dict[str, Iterable[str]] | None = None) -> None:
        self._grants: dict[str, set[str]] = {}
        for account, caps in (grants or {}).items():
            self._grants[account] = set(caps)

    def grant(self, account: str, capability_id: str) -> None:
        self._grants.setdefault(account, set()).add(capability_id)

    def revoke(self, account: str, capability_id: str) -> None:
        self._grants.get(account, set()).discard(capability_id)

    def holds(self, account: str, capability_id: str) -> bool:
        return capability_id in self._grants.get(account, ())

    def holds_any(self, account: str, capability_ids: Iterable[str]) -> bool:
        held = self._grants.get(account)
        if not held:
            return False
        return any(cid in held for cid in capability_ids)
