"""Core data models for the hybrid voting engine."""

from hybridgov.models.voting_class import (
    BalanceWeightedClass,
    ClassStrategy,
    DirectClass,
    VotingClass,
    classes_hash,
)
from hybridgov.models.config import GlobalConfig, GovernanceLimits
from hybridgov.models.proposal import (
    Call,
    Option,
    Proposal,
    ProposalStatus,
    Resolution,
)

__all__ = [
    "BalanceWeightedClass",
    "ClassStrategy",
    "DirectClass",
    "VotingClass",
    "classes_hash",
    "GlobalConfig",
    "GovernanceLimits",
    "Call",
    "Option",
    "Proposal",
    "ProposalStatus",
    "Resolution",
]
