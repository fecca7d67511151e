"""Governance configuration and proposal lifecycle."""

from hybridgov.governance.class_registry import ClassRegistry, validate_classes
from hybridgov.governance.proposal_lifecycle import ProposalLifecycle

__all__ = ["ClassRegistry", "ProposalLifecycle", "validate_classes"]
