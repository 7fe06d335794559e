"""Pre-flight reconciliation between a gitwatch working tree and its remote branch."""

__version__ = "0.3.0"
