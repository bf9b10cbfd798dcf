"""Ledger Core - double-entry general ledger for the ERP platform."""
__version__ = "1.0.0"
