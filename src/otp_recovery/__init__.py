"""Stateless SMS-verified password recovery."""

__version__ = "0.1.0"
