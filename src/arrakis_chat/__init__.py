"""Realtime client for the Arrakis conversation service."""

__version__ = "0.1.0"
