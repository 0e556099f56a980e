"""Bracket, live scoring and court scheduling engine for club tournaments."""

__version__ = "0.1.0"
