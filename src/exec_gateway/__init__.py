"""Queued asynchronous execution of external commands."""

__version__ = "0.1.0"
