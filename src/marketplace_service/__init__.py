"""Marketplace Service - task lifecycle and ledger engine for the web-development marketplace."""

__version__ = "0.1.0"
