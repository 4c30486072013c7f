"""AlertCPL - cost-per-lead alert reconciliation for Meta ad accounts."""

__version__ = "0.1.0"
