"""Tests for structured logging."""

import asyncio
import json
import logging

import pytest

from util_logger import (
    ComponentConfig,
    ComponentType,
    JSONFormatter,
    LoggerFactory,
    LogLevel,
    log_exceptions,
)


class TestLoggerFactory:
    def test_logger_name_and_level(self):
        logger = LoggerFactory.create_logger(ComponentType.ADAPTER, "TestDispatcher")
        assert logger.name == "adapter.TestDispatcher"
        assert len(logger.handlers) == 1

    def test_recreating_does_not_duplicate_handlers(self):
        LoggerFactory.create_logger(ComponentType.SERVICE, "Twice")
        logger = LoggerFactory.create_logger(ComponentType.SERVICE, "Twice")
        assert len(logger.handlers) == 1

    def test_custom_config_level(self):
        config = ComponentConfig(component_type=ComponentType.SCHEMA, log_level=LogLevel.WARNING)
        logger = LoggerFactory.create_logger(ComponentType.SCHEMA, "Quiet", config)
        assert logger.level == logging.WARNING

    def test_custom_dimensions_injected(self, caplog):
        logger = LoggerFactory.create_logger(ComponentType.SERVICE, "Dimensions")
        with caplog.at_level(logging.INFO, logger="service.Dimensions"):
            logger.info("query done", extra={'custom_dimensions': {'feature_count': 3}})

        record = caplog.records[-1]
        assert record.custom_dimensions == {
            'component_type': 'service',
            'component_name': 'Dimensions',
            'feature_count': 3
        }


class TestJSONFormatter:
    def _record(self, message, **extra):
        record = logging.LogRecord("adapter.Test", logging.WARNING, __file__, 10, message, None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_output(self):
        record = self._record("GET url too long", custom_dimensions={'url_length': 3000})
        payload = json.loads(JSONFormatter().format(record))
        assert payload['level'] == "WARNING"
        assert payload['message'] == "GET url too long"
        assert payload['customDimensions'] == {'url_length': 3000}

    def test_truncates_long_messages(self):
        payload = json.loads(JSONFormatter(max_message_length=10).format(self._record("x" * 50)))
        assert payload['message'] == "x" * 10 + "..."


class TestLogExceptions:
    def test_logs_and_reraises(self, caplog):
        logger = LoggerFactory.create_logger(ComponentType.SERVICE, "Decorated")

        @log_exceptions(logger=logger)
        def explode():
            raise ValueError("boom")

        with caplog.at_level(logging.ERROR, logger="service.Decorated"):
            with pytest.raises(ValueError, match="boom"):
                explode()

        record = caplog.records[-1]
        assert record.custom_dimensions['exception_type'] == "ValueError"
        assert record.custom_dimensions['function_name'] == "explode"

    def test_async_functions(self, caplog):
        logger = LoggerFactory.create_logger(ComponentType.SERVICE, "DecoratedAsync")

        @log_exceptions(logger=logger)
        async def explode():
            raise RuntimeError("async boom")

        with caplog.at_level(logging.ERROR, logger="service.DecoratedAsync"):
            with pytest.raises(RuntimeError):
                asyncio.run(explode())

        assert caplog.records[-1].custom_dimensions['exception_message'] == "async boom"

    def test_return_value_passes_through(self):
        @log_exceptions(ComponentType.SERVICE, "Passthrough")
        def add(a, b):
            return a + b

        assert add(2, 3) == 5
