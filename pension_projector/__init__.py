"""Pension projection engine with a server endpoint and a local fallback."""

__version__ = "0.1.0"
