"""Slidefox: AI-assisted presentation builder backend."""

__version__ = "0.1.0"
