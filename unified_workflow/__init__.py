"""Unified Workflow Engine - template hierarchy, execution instances and analytics."""

__version__ = "0.1.0"
