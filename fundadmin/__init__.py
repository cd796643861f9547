"""Dual-approval workflow engine for fund administration."""

__version__ = "0.3.0"
