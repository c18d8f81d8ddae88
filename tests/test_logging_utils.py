"""Tests for logging setup."""
from __future__ import annotations

import logging

from storage_tap.logging_utils import TRACE_LEVEL, configure_logging, resolve_log_level


class TestResolveLogLevel:
    def test_verbosity_wins(self):
        assert resolve_log_level(1, "WARNING") == logging.DEBUG
        assert resolve_log_level(2, "WARNING") == TRACE_LEVEL
        assert resolve_log_level(3, "ERROR") == TRACE_LEVEL

    def test_fallback_name(self):
        assert resolve_log_level(0, "warning") == logging.WARNING
        assert resolve_log_level(0, "bogus") == logging.INFO


class TestConfigureLogging:
    def test_registers_trace_level(self):
        configure_logging(logging.INFO)
        assert logging.getLevelName(TRACE_LEVEL) == "TRACE"
        assert hasattr(logging.getLogger("storage_tap"), "trace")
