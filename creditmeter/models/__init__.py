"""Ledger records, ORM tables and API models for the credit metering service."""
