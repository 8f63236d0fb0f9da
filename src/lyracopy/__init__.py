"""Resumable rsync transfers and erases driven by a persisted step log."""

__version__ = "1.0.0"
