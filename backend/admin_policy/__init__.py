"""Authorization and escalation policy engine for administrative actions."""

__version__ = "0.1.0"
