"""
Unified logging entry point for the credit metering service.

Importing this module initializes structured logging and exposes the
application loggers.
"""

import logging

from .config import env
from .config.logging import get_logger, log_credit_event, log_error, setup_logging

__all__ = [
  "api_logger",
  "credit_logger",
  "get_logger",
  "log_credit_event",
  "log_error",
  "logger",
]

setup_logging()

logger = get_logger("creditmeter")

if env.is_development():
  logging.getLogger("httpx").setLevel(logging.WARNING)
  logging.getLogger("httpcore").setLevel(logging.WARNING)
  logging.getLogger("aiosqlite").setLevel(logging.WARNING)

api_logger = get_logger("creditmeter.api")
credit_logger = get_logger("creditmeter.credits")
