"""Task dependency graph and critical path scheduling service."""

__version__ = "0.1.0"
