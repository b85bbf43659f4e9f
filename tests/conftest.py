"""
Pytest fixtures for the PAM engine test suite.

Provides:
- Session-wide structured logging configuration
- ``captured_logs`` for asserting on structured log records
"""

import json
import logging
from io import StringIO

import pytest

from pam_kernel.logging_config import (
    StructuredFormatter,
    configure_logging,
    reset_logging,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture
def captured_logs():
    """
    Capture pam_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            execute_graph(graph, context)
            logs = captured_logs()
            assert any(r["message"] == "pam_execution_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("pam_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as slow (property-based fuzzing)"
    )
