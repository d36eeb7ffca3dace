"""Realtime fan-out of board events."""

from retro.realtime.hub import BroadcastHub

__all__ = ["BroadcastHub"]
