"""runbook: run named shell tasks from a justfile."""

__version__ = "0.3.0"
