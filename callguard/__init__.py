"""Sensitive-data redaction for recorded phone calls."""

__version__ = "0.1.0"
