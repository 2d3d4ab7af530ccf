"""Gym slot booking bot."""

__version__ = "0.1.0"
