"""Credit metering Dagster orchestration.

Scheduled maintenance of the credit ledger, such as reclaiming credits held
by expired reservations.
"""

from creditmeter.dagster.definitions import defs

__all__ = ["defs"]
