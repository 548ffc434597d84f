"""Heuristic safety and legitimacy scoring for public GitHub repositories."""

__version__ = "0.1.0"
