"""Action dispatcher contract.

The dispatcher executes the winning option's batch of calls. A failure
of any call aborts the whole batch; the engine only sees success or
failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence, runtime_checkable

from hybridgov.models.proposal import Call


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    error: Optional[str] = None


@runtime_checkable
class ActionDispatcher(Protocol):

    def execute(self, proposal_id: int, batch: Sequence[Call]) -> DispatchResult:
        ...


class RecordingDispatcher:
    """In-memory dispatcher that records executed batches.

    ``handler`` is invoked per call and may raise to simulate a failing
    target; the batch is then reported as failed and nothing is recorded.
    """

    def __init__(self, handler: Optional[Callable[[Call], None]] = None) -> None:
        self._handler = handler
        self.executed: list[tuple[int, tuple[Call, ...]]] = []

    def execute(self, proposal_id: int, batch: Sequence[Call]) -> DispatchResult:
        if self._handler is not None:
            for i, call in enumerate(batch):
                try:
                    self._handler(call)
                except (ValueError, RuntimeError, OSError) as e:
                    return DispatchResult(
                        success=False,
                        error=f"call {i} to {call.target} failed: {e}",
                    )
        self.executed.append((proposal_id, tuple(batch)))
        return DispatchResult(success=True)
