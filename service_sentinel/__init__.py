"""Profile-driven static analysis for Python service code."""

__version__ = "0.1.0"
