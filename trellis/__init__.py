"""Trellis: task lifecycle and context injection for AI-assisted development."""

__version__ = "0.1.0"
