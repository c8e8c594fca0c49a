"""
Structured Logging Configuration for the credit metering service.

Key Features:
- Tiered logging (Critical/Operational/Debug)
- Structured JSON output for log search tooling
- Automatic log level management by environment
- Credit lifecycle events with consistent searchable fields
"""

import json
import logging
import logging.config
import traceback
from datetime import UTC, datetime
from typing import Any

from creditmeter.config.env import EnvConfig


class StructuredFormatter(logging.Formatter):
  """
  JSON formatter that creates searchable structured logs.

  - Timestamp in ISO format
  - Consistent field names for filtering
  - Hierarchical component/action structure
  - Metadata preserved as searchable fields
  """

  def format(self, record: logging.LogRecord) -> str:
    log_entry = {
      "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
      "level": record.levelname,
      "component": getattr(record, "component", record.name),
      "message": record.getMessage(),
    }

    if hasattr(record, "action"):
      log_entry["action"] = record.action

    if hasattr(record, "user_id"):
      log_entry["user_id"] = record.user_id
    if hasattr(record, "idempotency_key"):
      log_entry["idempotency_key"] = record.idempotency_key
    if hasattr(record, "credits"):
      log_entry["credits"] = record.credits

    if record.levelno >= logging.ERROR:
      if record.exc_info:
        log_entry["error"] = {
          "type": record.exc_info[0].__name__ if record.exc_info[0] else "Unknown",
          "message": str(record.exc_info[1]) if record.exc_info[1] else "",
          "traceback": traceback.format_exception(*record.exc_info),
        }

      if hasattr(record, "error_category"):
        log_entry["error_category"] = record.error_category

    if hasattr(record, "metadata"):
      log_entry["metadata"] = record.metadata

    return json.dumps(log_entry, default=str, separators=(",", ":"))


class TieredLogFilter:
  """
  Filter logs by tier.

  Tier 1 (Critical): ERROR, CRITICAL
  Tier 2 (Operational): INFO, WARNING
  Tier 3 (Debug): DEBUG
  """

  def __init__(self, tier: str):
    self.tier = tier

  def filter(self, record: logging.LogRecord) -> bool:
    if self.tier == "critical":
      return record.levelno >= logging.ERROR
    elif self.tier == "operational":
      return logging.INFO <= record.levelno < logging.ERROR
    elif self.tier == "debug":
      return record.levelno == logging.DEBUG
    return True


def get_logging_config(environment: str | None = None) -> dict[str, Any]:
  """
  Generate logging configuration based on environment.

  - prod: INFO level, structured output, no debug logs
  - staging: INFO level, with debug logs enabled
  - test: WARNING level, minimal output for clean test runs
  - dev: DEBUG level, all logs enabled (unless LOG_LEVEL overrides)
  """
  env = environment or EnvConfig.ENVIRONMENT

  log_level_override = getattr(EnvConfig, "LOG_LEVEL", None)

  if env == "prod":
    default_level = "INFO"
    enable_debug = False
  elif env == "staging":
    default_level = "INFO"
    enable_debug = True
  elif env == "test":
    default_level = "WARNING"
    enable_debug = False
  else:  # dev
    default_level = log_level_override or "DEBUG"
    enable_debug = default_level == "DEBUG"

  app_handlers = ["critical", "operational"] if env != "dev" else ["console"]

  config = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
      "structured": {
        "()": StructuredFormatter,
      },
      "simple": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
    },
    "filters": {
      "critical_filter": {"()": TieredLogFilter, "tier": "critical"},
      "operational_filter": {"()": TieredLogFilter, "tier": "operational"},
      "debug_filter": {"()": TieredLogFilter, "tier": "debug"},
    },
    "handlers": {
      "critical": {
        "class": "logging.StreamHandler",
        "level": "ERROR",
        "formatter": "structured",
        "filters": ["critical_filter"],
        "stream": "ext://sys.stderr",
      },
      "operational": {
        "class": "logging.StreamHandler",
        "level": "INFO",
        "formatter": "structured",
        "filters": ["operational_filter"],
        "stream": "ext://sys.stdout",
      },
      "console": {
        "class": "logging.StreamHandler",
        "level": default_level,
        "formatter": "simple" if env == "dev" else "structured",
        "stream": "ext://sys.stdout",
      },
    },
    "loggers": {
      "creditmeter": {
        "level": default_level,
        "handlers": list(app_handlers),
        "propagate": False,
      },
      "creditmeter.api": {
        "level": default_level,
        "handlers": list(app_handlers),
        "propagate": False,
      },
      "uvicorn": {
        "level": "WARNING",
        "handlers": ["operational"] if env != "dev" else ["console"],
        "propagate": False,
      },
      "sqlalchemy": {
        "level": "WARNING",
        "handlers": ["operational"] if env != "dev" else ["console"],
        "propagate": False,
      },
    },
    "root": {
      "level": "WARNING",
      "handlers": ["critical"] if env != "dev" else ["console"],
    },
  }

  if enable_debug:
    config["handlers"]["debug"] = {
      "class": "logging.StreamHandler",
      "level": "DEBUG",
      "formatter": "structured",
      "filters": ["debug_filter"],
      "stream": "ext://sys.stdout",
    }

    for logger_name in ["creditmeter", "creditmeter.api"]:
      if env != "dev":
        config["loggers"][logger_name]["handlers"].append("debug")

  return config


def setup_logging(environment: str | None = None) -> None:
  """Initialize structured logging configuration."""
  config = get_logging_config(environment)
  logging.config.dictConfig(config)


def get_logger(name: str) -> logging.Logger:
  """Get a logger with structured logging capabilities."""
  return logging.getLogger(name)


def log_credit_event(
  logger: logging.Logger,
  action: str,
  message: str,
  user_id: str | None = None,
  idempotency_key: str | None = None,
  credits: int | None = None,
  metadata: dict[str, Any] | None = None,
  level: int = logging.INFO,
) -> None:
  """Log a credit lifecycle event (reserve, complete, refund, grant)."""
  logger.log(
    level,
    message,
    extra={
      "component": "credits",
      "action": action,
      "user_id": user_id,
      "idempotency_key": idempotency_key,
      "credits": credits,
      "metadata": metadata or {},
    },
  )


def log_error(
  logger: logging.Logger,
  error: Exception,
  component: str,
  action: str,
  error_category: str = "application",
  user_id: str | None = None,
  metadata: dict[str, Any] | None = None,
) -> None:
  """Log error with structured data for easy searching."""
  logger.error(
    f"Error in {component}.{action}: {error!s}",
    exc_info=error,
    extra={
      "component": component,
      "action": action,
      "error_category": error_category,
      "user_id": user_id,
      "metadata": metadata or {},
    },
  )


# Initialize logging on import
setup_logging()
