"""Persistence and HTTP integration for the loan ledger."""
