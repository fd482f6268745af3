"""Classroom email notification service."""

__version__ = "0.3.0"
