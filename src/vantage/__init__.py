"""Vantage: multi-engine equity research reports with session history."""

__version__ = "0.4.0"
