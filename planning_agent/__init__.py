"""Household planning agent: financial decision pipeline service."""

__version__ = "0.1.0"
