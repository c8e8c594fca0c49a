"""
Centralized environment variable configuration.

This module provides a single source of truth for all environment variables,
with type conversions and default values.

Organization:
- Helper functions for type-safe env var access
- Core application settings
- Database configuration
- Credit engine tuning
"""

import os


# ==========================================================================
# HELPER FUNCTIONS FOR TYPE-SAFE ENVIRONMENT VARIABLE ACCESS
# ==========================================================================


def get_int_env(key: str, default: int) -> int:
  """
  Get an integer environment variable with safe type conversion.

  Args:
      key: Environment variable name
      default: Default value if not set or invalid

  Returns:
      Integer value from environment or default
  """
  try:
    return int(os.getenv(key, str(default)))
  except (ValueError, TypeError):
    # Use print instead of logger to avoid circular import
    print(f"Warning: Invalid {key} value, using default: {default}")
    return default


def get_bool_env(key: str, default: bool = False) -> bool:
  """
  Get a boolean environment variable.

  Args:
      key: Environment variable name
      default: Default value if not set

  Returns:
      Boolean value from environment or default
  """
  value = os.getenv(key, str(default)).lower()
  return value in ("true", "1", "yes", "on")


def get_str_env(key: str, default: str = "") -> str:
  """Get a string environment variable."""
  return os.getenv(key, default)


# ==========================================================================
# MAIN CONFIGURATION CLASS
# ==========================================================================


class EnvConfig:
  """
  Centralized environment variable configuration.

  Variables are organized into logical groups for easier maintenance.
  All variables use type-safe helper functions for consistent behavior.
  """

  # ==========================================================================
  # CORE APPLICATION SETTINGS
  # ==========================================================================

  ENVIRONMENT = get_str_env("ENVIRONMENT", "dev")
  DEBUG = get_bool_env("DEBUG", False)
  LOG_LEVEL = get_str_env("LOG_LEVEL", "INFO")

  HOST = get_str_env("HOST", "0.0.0.0")
  PORT = get_int_env("PORT", 8000)

  # ==========================================================================
  # DATABASE
  # ==========================================================================

  DATABASE_URL = get_str_env("DATABASE_URL", "sqlite+aiosqlite:///./creditmeter.db")
  DATABASE_ECHO = get_bool_env("DATABASE_ECHO", False)

  # ==========================================================================
  # CREDIT ENGINE
  # ==========================================================================

  # Pending reservations older than this are refunded by the reconciliation job
  CREDIT_RESERVATION_TTL_MINUTES = get_int_env("CREDIT_RESERVATION_TTL_MINUTES", 60)

  # Optimistic transaction retries before the store reports a failure
  CREDIT_TRANSACTION_MAX_RETRIES = get_int_env("CREDIT_TRANSACTION_MAX_RETRIES", 5)
  CREDIT_TRANSACTION_RETRY_DELAY_MS = get_int_env(
    "CREDIT_TRANSACTION_RETRY_DELAY_MS", 10
  )

  # Credits granted when an account is first provisioned
  SIGNUP_BONUS_CREDITS = get_int_env("SIGNUP_BONUS_CREDITS", 10)

  # Reconciliation schedule defaults to STOPPED outside of explicit opt-in
  RECONCILIATION_SCHEDULE_ENABLED = get_bool_env(
    "RECONCILIATION_SCHEDULE_ENABLED", False
  )

  # Expired reservations loaded per store query during a sweep
  RECONCILIATION_BATCH_SIZE = get_int_env("RECONCILIATION_BATCH_SIZE", 500)

  @classmethod
  def is_production(cls) -> bool:
    """Check if running in production environment."""
    return cls.ENVIRONMENT.lower() in ["prod", "production"]

  @classmethod
  def is_development(cls) -> bool:
    """Check if running in development environment."""
    return cls.ENVIRONMENT.lower() in ["dev", "development", "local"]

  @classmethod
  def is_test(cls) -> bool:
    """Check if running in test environment."""
    return cls.ENVIRONMENT.lower() in ["test", "testing"]


env = EnvConfig()
