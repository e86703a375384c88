"""Tamper-evident, hash-chained audit event ledger."""

__version__ = "0.1.0"
