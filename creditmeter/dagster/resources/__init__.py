"""Dagster resources for the credit metering service.

Resources provide shared infrastructure components to Dagster jobs:
- LedgerStoreResource: SQL ledger store holding balances and usage events
"""

from creditmeter.dagster.resources.ledger import LedgerStoreResource

__all__ = ["LedgerStoreResource"]
