"""Tests for structured logging."""

import json
import logging
from unittest.mock import MagicMock

import pytest

from creditmeter.config.logging import (
  StructuredFormatter,
  TieredLogFilter,
  get_logging_config,
  log_credit_event,
  log_error,
)


def _record(level=logging.INFO, **extra):
  record = logging.LogRecord("creditmeter.test", level, __file__, 1, "hello", None, None)
  for key, value in extra.items():
    setattr(record, key, value)
  return record


class TestStructuredFormatter:
  @pytest.mark.unit
  def test_formats_credit_fields_as_json(self):
    record = _record(
      component="credits",
      action="reserve_credits",
      user_id="user_1",
      idempotency_key="use_abc",
      credits=6,
    )
    entry = json.loads(StructuredFormatter().format(record))

    assert entry["component"] == "credits"
    assert entry["action"] == "reserve_credits"
    assert entry["user_id"] == "user_1"
    assert entry["idempotency_key"] == "use_abc"
    assert entry["credits"] == 6
    assert entry["message"] == "hello"

  @pytest.mark.unit
  def test_includes_exception_details_for_errors(self):
    try:
      raise RuntimeError("boom")
    except RuntimeError:
      import sys

      record = _record(level=logging.ERROR, error_category="store")
      record.exc_info = sys.exc_info()

    entry = json.loads(StructuredFormatter().format(record))
    assert entry["error"]["type"] == "RuntimeError"
    assert entry["error"]["message"] == "boom"
    assert entry["error_category"] == "store"


class TestTieredLogFilter:
  @pytest.mark.unit
  def test_tiers_partition_levels(self):
    critical = TieredLogFilter("critical")
    operational = TieredLogFilter("operational")
    debug = TieredLogFilter("debug")

    assert critical.filter(_record(logging.ERROR))
    assert not critical.filter(_record(logging.INFO))
    assert operational.filter(_record(logging.WARNING))
    assert not operational.filter(_record(logging.ERROR))
    assert debug.filter(_record(logging.DEBUG))
    assert not debug.filter(_record(logging.INFO))


class TestLoggingConfig:
  @pytest.mark.unit
  def test_test_environment_is_quiet(self):
    config = get_logging_config("test")
    assert config["loggers"]["creditmeter"]["level"] == "WARNING"

  @pytest.mark.unit
  def test_dev_environment_honours_log_level(self):
    from creditmeter.config.env import EnvConfig

    config = get_logging_config("dev")
    assert config["loggers"]["creditmeter"]["level"] == (EnvConfig.LOG_LEVEL or "DEBUG")
    assert config["loggers"]["creditmeter"]["handlers"] == ["console"]


class TestLogHelpers:
  @pytest.mark.unit
  def test_log_credit_event_passes_structured_extra(self):
    logger = MagicMock()
    log_credit_event(
      logger, "refund_credits", "Refunded", user_id="u1", idempotency_key="k", credits=5
    )

    level, message = logger.log.call_args.args
    extra = logger.log.call_args.kwargs["extra"]
    assert level == logging.INFO
    assert message == "Refunded"
    assert extra["component"] == "credits"
    assert extra["action"] == "refund_credits"
    assert extra["credits"] == 5

  @pytest.mark.unit
  def test_log_error_attaches_exception(self):
    logger = MagicMock()
    error = ValueError("bad")
    log_error(logger, error, component="credits", action="reserve_credits")

    kwargs = logger.error.call_args.kwargs
    assert kwargs["exc_info"] is error
    assert kwargs["extra"]["error_category"] == "application"
