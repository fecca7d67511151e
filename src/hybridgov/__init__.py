"""hybridgov: multi-class weighted governance tally engine."""

__version__ = "0.1.0"
