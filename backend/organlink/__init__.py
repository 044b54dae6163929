"""Organ matching and allocation engine."""

__version__ = "1.0.0"
