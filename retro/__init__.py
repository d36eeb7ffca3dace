"""Real-time retrospective board."""

__version__ = "0.1.0"
