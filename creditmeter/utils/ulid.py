"""
ULID (Universally Unique Lexicographically Sortable Identifier) utilities.

Audit rows use time-ordered ids so the credit history sorts naturally by
creation time.
"""

from ulid import ULID


def generate_ulid() -> str:
  """Generate a time-ordered ULID (26 characters)."""
  return str(ULID())


def generate_prefixed_ulid(prefix: str) -> str:
  """
  Generate a prefixed ULID for better readability and type identification.

  Args:
      prefix: A short prefix to identify the record type

  Returns:
      A prefixed ULID string.
      Example: "txn_01ARZ3NDEKTSV4RRFFQ69G5FAV"
  """
  return f"{prefix}_{ULID()}"
