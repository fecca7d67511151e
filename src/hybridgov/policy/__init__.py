"""Governance policy loading."""

from hybridgov.policy.resolver import PolicyResolver

__all__ = ["PolicyResolver"]
