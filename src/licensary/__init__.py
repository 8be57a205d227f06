"""Licensary: license issuance, verification and spreadsheet sync service."""

__version__ = "0.1.0"
