"""orca - sprint orchestration for AI coding droids."""

__version__ = "0.1.0"
