"""Unit-aware notepad calculator."""

__version__ = "0.1.0"
