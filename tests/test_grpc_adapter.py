import asyncio

import grpc
import pytest
import pytest_asyncio

from rpc_interceptors.exceptions import InvalidArgumentError
from rpc_interceptors.observability.metrics import (
    REQUEST_LATENCY,
    REQUESTS_COMPLETED,
    REQUESTS_RECEIVED,
    InMemoryMetricsCollector,
)
from rpc_interceptors.server.chain import InterceptorChain
from rpc_interceptors.server.grpc_adapter import GrpcChainInterceptor, default_method_label
from rpc_interceptors.server.interceptors import (
    ErrorLoggingInterceptor,
    LatencyInterceptor,
    RequestCountInterceptor,
)
from rpc_interceptors.server.status import ERROR_KIND_METADATA_KEY
from tests.fixtures_chain import RecordingReporter

METHOD = "demo.Recommender/Recommend"


async def _recommend(request: bytes, context: grpc.aio.ServicerContext) -> bytes:
    user = request.decode()
    if user == "bad":
        raise ValueError("bad input")
    if user == "empty":
        raise InvalidArgumentError(message="user is required")
    if user == "slow":
        await asyncio.sleep(5)
    if user == "denied":
        await context.abort(grpc.StatusCode.PERMISSION_DENIED, "tenant not allowed")
    return b"items for " + request


async def _stream(request: bytes, context: grpc.aio.ServicerContext):
    for chunk in (b"a", b"b"):
        yield chunk


@pytest_asyncio.fixture
async def channel(collector: InMemoryMetricsCollector, reporter: RecordingReporter):
    chain = InterceptorChain([
        RequestCountInterceptor(collector),
        LatencyInterceptor(collector),
        ErrorLoggingInterceptor(reporter),
    ])
    server = grpc.aio.server(interceptors=[GrpcChainInterceptor(chain)])
    server.add_generic_rpc_handlers((
        grpc.method_handlers_generic_handler(
            "demo.Recommender",
            {
                "Recommend": grpc.unary_unary_rpc_method_handler(_recommend),
                "Stream": grpc.unary_stream_rpc_method_handler(_stream),
            },
        ),
    ))
    port = server.add_insecure_port("127.0.0.1:0")
    await server.start()
    try:
        async with grpc.aio.insecure_channel(f"127.0.0.1:{port}") as grpc_channel:
            yield grpc_channel
    finally:
        await server.stop(None)


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def test_default_method_label() -> None:
    assert default_method_label("/demo.Recommender/Recommend") == METHOD


@pytest.mark.asyncio
async def test_unary_success_runs_through_chain(
    channel: grpc.aio.Channel, collector: InMemoryMetricsCollector
) -> None:
    response = await channel.unary_unary("/demo.Recommender/Recommend")(b"u1")

    assert response == b"items for u1"
    assert collector.counter_value(REQUESTS_RECEIVED, method=METHOD) == 1
    assert collector.counter_value(REQUESTS_COMPLETED, method=METHOD, outcome="success") == 1
    assert len(collector.latency_samples(REQUEST_LATENCY, method=METHOD)) == 1


@pytest.mark.asyncio
async def test_handler_error_becomes_status_with_original_message(
    channel: grpc.aio.Channel, collector: InMemoryMetricsCollector, reporter: RecordingReporter
) -> None:
    with pytest.raises(grpc.aio.AioRpcError) as exc_info:
        await channel.unary_unary("/demo.Recommender/Recommend")(b"bad")

    error = exc_info.value
    trailing = {key: value for key, value in error.trailing_metadata()}
    assert error.code() == grpc.StatusCode.UNKNOWN
    assert error.details() == "bad input"
    assert trailing[ERROR_KIND_METADATA_KEY] == "ValueError"
    assert collector.counter_value(
        REQUESTS_COMPLETED, method=METHOD, outcome="failure", error_kind="ValueError"
    ) == 1
    assert [(r.error_kind, r.method) for r in reporter.reports] == [("ValueError", METHOD)]


@pytest.mark.asyncio
async def test_invalid_argument_status(channel: grpc.aio.Channel) -> None:
    with pytest.raises(grpc.aio.AioRpcError) as exc_info:
        await channel.unary_unary("/demo.Recommender/Recommend")(b"empty")

    assert exc_info.value.code() == grpc.StatusCode.INVALID_ARGUMENT
    assert exc_info.value.details() == "user is required"


@pytest.mark.asyncio
async def test_handler_abort_keeps_its_status(channel: grpc.aio.Channel) -> None:
    with pytest.raises(grpc.aio.AioRpcError) as exc_info:
        await channel.unary_unary("/demo.Recommender/Recommend")(b"denied")

    assert exc_info.value.code() == grpc.StatusCode.PERMISSION_DENIED
    assert exc_info.value.details() == "tenant not allowed"


@pytest.mark.asyncio
async def test_client_deadline_cancels_server_call(
    channel: grpc.aio.Channel, collector: InMemoryMetricsCollector
) -> None:
    with pytest.raises(grpc.aio.AioRpcError) as exc_info:
        await channel.unary_unary("/demo.Recommender/Recommend")(b"slow", timeout=0.05)
    assert exc_info.value.code() == grpc.StatusCode.DEADLINE_EXCEEDED

    await _wait_for(
        lambda: collector.counter_value(
            REQUESTS_COMPLETED, method=METHOD, outcome="cancelled", error_kind="Cancelled"
        ) == 1
    )
    assert len(collector.latency_samples(REQUEST_LATENCY, method=METHOD)) == 1


@pytest.mark.asyncio
async def test_streaming_methods_bypass_chain(
    channel: grpc.aio.Channel, collector: InMemoryMetricsCollector
) -> None:
    call = channel.unary_stream("/demo.Recommender/Stream")(b"x")
    chunks = [chunk async for chunk in call]

    assert chunks == [b"a", b"b"]
    assert collector.counter_total(REQUESTS_RECEIVED) == 0
