"""Dependency-aware task prioritization engine."""

__version__ = "0.1.0"
