"""Student and course record keeping backed by MongoDB."""

__version__ = "0.1.0"
