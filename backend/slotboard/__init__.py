"""Slotboard: slot booking with reminder notifications."""

__version__ = "1.0.0"
