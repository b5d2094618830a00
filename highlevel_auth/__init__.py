# highlevel_auth/__init__.py

"""Credential lifecycle management for the HighLevel API."""

__version__ = "0.1.0"
