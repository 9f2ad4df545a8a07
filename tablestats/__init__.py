"""tablestats - statistics, row counts and group points over user-defined tables."""

__version__ = "0.1.0"
