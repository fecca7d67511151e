"""Error taxonomy for the hybrid voting engine.

Engines raise these; the service layer converts them into failed
ServiceResults. Every error subclasses ValueError so callers that only
care about "the operation was rejected" can keep catching ValueError.

Kinds:
- validation: malformed input (titles, durations, weights, slices).
- authorization: caller lacks the capability or role required.
- state: proposal missing, closed, still open, or double vote.
- arithmetic: accumulator overflow.
- dispatch: a bound batch failed to execute.
"""

from __future__ import annotations


class GovernanceError(ValueError):
    """Base class for every rejected governance operation."""
    kind = "governance"


class ValidationError(GovernanceError):
    kind = "validation"


class AuthorizationError(GovernanceError):
    kind = "authorization"


class ProposalStateError(GovernanceError):
    kind = "state"


class AccumulatorOverflowError(GovernanceError):
    kind = "arithmetic"


class DispatchError(GovernanceError):
    kind = "dispatch"
