"""Azure Quick Review - best-practice scanner for Azure resources."""

__version__ = "0.1.0"
