import logging

import pytest

from rpc_interceptors.observability.logging import LogContext
from rpc_interceptors.observability.metrics import InMemoryMetricsCollector
from tests.fixtures_chain import FakeClock, RecordingReporter


@pytest.fixture
def collector() -> InMemoryMetricsCollector:
    return InMemoryMetricsCollector()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(start=100.0)


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture(autouse=True)
def _restore_package_logger():
    package_logger = logging.getLogger("rpc_interceptors")
    handlers = list(package_logger.handlers)
    level = package_logger.level
    propagate = package_logger.propagate
    yield
    package_logger.handlers[:] = handlers
    package_logger.setLevel(level)
    package_logger.propagate = propagate
