import asyncio

import pytest

from rpc_interceptors.config import ChainConfig
from rpc_interceptors.config.models import MetricsConfig, ReporterConfig
from rpc_interceptors.exceptions import ConfigurationError, MethodNotFoundError
from rpc_interceptors.observability.metrics import REQUESTS_COMPLETED, REQUESTS_RECEIVED, InMemoryMetricsCollector
from rpc_interceptors.observability.reporting import QueueingErrorReporter
from rpc_interceptors.server.chain import InterceptorChain
from rpc_interceptors.server.dispatcher import RpcDispatcher
from rpc_interceptors.server.interceptors import ErrorLoggingInterceptor, RequestCountInterceptor
from rpc_interceptors.types import Cancelled, Failure, Success
from tests.fixtures_chain import RecordingReporter


async def recommend(request, context):
    return {"user": request["user"], "request_id": context.request_id}


def _dispatcher(collector, reporter) -> RpcDispatcher:
    chain = InterceptorChain([RequestCountInterceptor(collector), ErrorLoggingInterceptor(reporter)])
    return RpcDispatcher({"Recommend": recommend}, chain, collector=collector, reporter=reporter)


@pytest.mark.asyncio
async def test_dispatch_runs_registered_method(
    collector: InMemoryMetricsCollector, reporter: RecordingReporter
) -> None:
    dispatcher = _dispatcher(collector, reporter)
    outcome = await dispatcher.dispatch(
        "Recommend", {"user": "u1"}, metadata={"X-Request-Id": "req-42"}
    )

    assert outcome == Success({"user": "u1", "request_id": "req-42"})
    assert collector.counter_value(REQUESTS_COMPLETED, method="Recommend", outcome="success") == 1
    assert dispatcher.methods == ("Recommend",)
    assert dispatcher.has_method("Recommend")


@pytest.mark.asyncio
async def test_unknown_method_bypasses_chain(
    collector: InMemoryMetricsCollector, reporter: RecordingReporter
) -> None:
    dispatcher = _dispatcher(collector, reporter)
    outcome = await dispatcher.dispatch("Missing")

    assert isinstance(outcome, Failure)
    assert outcome.error_kind == "MethodNotFoundError"
    assert isinstance(outcome.cause, MethodNotFoundError)
    assert collector.counter_total(REQUESTS_RECEIVED) == 0
    assert reporter.reports == []


@pytest.mark.asyncio
async def test_dispatch_honours_timeout(
    collector: InMemoryMetricsCollector, reporter: RecordingReporter
) -> None:
    async def slow(request):
        await asyncio.sleep(5)

    chain = InterceptorChain([RequestCountInterceptor(collector)])
    dispatcher = RpcDispatcher({"Slow": slow}, chain, collector=collector)
    outcome = await dispatcher.dispatch("Slow", timeout=0.01)

    assert isinstance(outcome, Cancelled)
    assert collector.counter_value(
        REQUESTS_COMPLETED, method="Slow", outcome="cancelled", error_kind="Cancelled"
    ) == 1


def test_rejects_invalid_registrations() -> None:
    chain = InterceptorChain()
    with pytest.raises(ConfigurationError, match="empty"):
        RpcDispatcher({"": recommend}, chain)
    with pytest.raises(ConfigurationError, match="Recommend"):
        RpcDispatcher({"Recommend": None}, chain)


def test_new_context_normalizes_metadata() -> None:
    dispatcher = RpcDispatcher({}, InterceptorChain())
    context = dispatcher.new_context("Recommend", metadata=[("Tenant", "t1"), ("Bin-Bin", b"\x00")], timeout=1.0)

    assert context.metadata == {"tenant": "t1", "bin-bin": b"\x00"}
    assert context.time_remaining() is not None
    assert context.request_id


@pytest.mark.asyncio
async def test_from_config_builds_and_owns_lifecycle() -> None:
    config = ChainConfig(
        metrics=MetricsConfig(backend="memory"),
        reporter=ReporterConfig(backend="logging", queue_size=10),
    )

    async def fail(request):
        raise ValueError("bad input")

    dispatcher = RpcDispatcher.from_config({"Recommend": fail}, config)
    assert isinstance(dispatcher.collector, InMemoryMetricsCollector)
    assert isinstance(dispatcher.reporter, QueueingErrorReporter)
    assert dispatcher.chain.names == (
        "LogContextInterceptor",
        "RequestCountInterceptor",
        "LatencyInterceptor",
        "ErrorLoggingInterceptor",
    )

    async with dispatcher:
        assert dispatcher.reporter.running
        outcome = await dispatcher.dispatch("Recommend")
        assert outcome == Failure("ValueError", "bad input")

    assert not dispatcher.reporter.running
    assert dispatcher.collector.counter_value(
        REQUESTS_COMPLETED, method="Recommend", outcome="failure", error_kind="ValueError"
    ) == 1
