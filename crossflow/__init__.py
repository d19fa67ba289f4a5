"""Cross-contract dependency and state-flow security analysis."""

__version__ = "0.1.0"
