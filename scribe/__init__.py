# FILE: scribe/__init__.py
"""Scribe: apply the file, dependency and SQL actions in AI responses to a project."""

__version__ = "0.1.0"
