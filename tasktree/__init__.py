"""Hierarchical task domain model with leaf and container tasks."""

__version__ = "0.1.0"
