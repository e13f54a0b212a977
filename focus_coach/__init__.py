"""Offline-first storage and synchronisation core for Daily Focus Coach."""

__version__ = "0.3.0"
