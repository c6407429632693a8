"""NLDB Chat: natural language chat over cloud databases."""

__version__ = "0.1.0"
