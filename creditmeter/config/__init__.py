"""
Centralized configuration package for the credit metering service.

This package provides a single source of truth for environment settings,
credit pricing and logging.
"""

# Import env first to avoid circular dependencies
from .env import EnvConfig, env
from .credits import CostRule, CostScaling, CreditConfig

__all__ = [
  "CostRule",
  "CostScaling",
  "CreditConfig",
  "EnvConfig",
  "env",
]
