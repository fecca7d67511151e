"""Tally core: power arithmetic, vote accumulation, winner resolution."""

from hybridgov.tally.engine import TallyEngine, VoteReceipt
from hybridgov.tally.resolver import WinnerReport, WinnerResolver

__all__ = ["TallyEngine", "VoteReceipt", "WinnerReport", "WinnerResolver"]
