"""Spyglass — Twitch EventSub webhook bridge."""

__version__ = "1.0.0"
