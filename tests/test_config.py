from pathlib import Path

import pytest

from rpc_interceptors.config import ChainConfig, ConfigError, load_config, load_config_from_string
from rpc_interceptors.config.models import DEFAULT_INTERCEPTOR_ORDER
from rpc_interceptors.exceptions import ConfigurationError
from rpc_interceptors.observability.metrics import InMemoryMetricsCollector, NullMetricsCollector
from rpc_interceptors.observability.reporting import (
    LoggingErrorReporter,
    NullErrorReporter,
    QueueingErrorReporter,
)
from rpc_interceptors.server.builder import build_chain, build_collector, build_reporter, register_interceptor
from rpc_interceptors.server.context import CallContext
from rpc_interceptors.server.interceptors import FunctionInterceptor, LatencyInterceptor
from rpc_interceptors.server.metadata import normalize_metadata
from rpc_interceptors.telemetry.reporting import OTelErrorReporter
from tests.fixtures_chain import RecordingReporter


def test_defaults() -> None:
    config = ChainConfig()
    assert config.interceptors == DEFAULT_INTERCEPTOR_ORDER
    assert config.metrics.backend == "memory"
    assert config.reporter.backend == "logging"
    assert config.reporter.queue_size == 1000
    assert config.error_logging.metadata_keys is None
    assert config.logging.format == "json"


def test_load_config_from_string_with_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RPC_REPORTER", "none")
    monkeypatch.delenv("RPC_SPLIT", raising=False)
    config = load_config_from_string(
        """
rpc_interceptors:
  interceptors: [error_logging, latency, request_count]
  latency:
    split_by_outcome: ${RPC_SPLIT:-yes}
  error_logging:
    metadata_keys: tenant, region
    report_cancellations: true
  reporter:
    backend: ${RPC_REPORTER}
    queue_size: "0"
  logging:
    level: debug
    format: Console
"""
    )

    assert config.interceptors == ("error_logging", "latency", "request_count")
    assert config.latency.split_by_outcome is True
    assert config.error_logging.metadata_keys == ("tenant", "region")
    assert config.error_logging.report_cancellations is True
    assert config.reporter.backend == "none"
    assert config.reporter.queue_size == 0
    assert config.logging.level == "DEBUG"
    assert config.logging.format == "console"


def test_load_config_file(tmp_path: Path) -> None:
    path = tmp_path / "chain.yaml"
    path.write_text("interceptors: [request_count]\nmetrics:\n  backend: none\n", encoding="utf-8")

    config = load_config(path)
    assert config.interceptors == ("request_count",)
    assert config.metrics.backend == "none"


@pytest.mark.parametrize(
    "content, message",
    [
        ("metrics:\n  backend: statsd\n", "metrics.backend"),
        ("reporter:\n  queue_size: -1\n", "queue_size"),
        ("latency: [1, 2]\n", "latency"),
        ("- a\n- b\n", "mapping"),
        ("interceptors: [a\n", "Invalid YAML"),
        ("reporter:\n  backend: ${RPC_UNSET_VARIABLE}\n", "RPC_UNSET_VARIABLE"),
    ],
)
def test_invalid_config_raises(content: str, message: str, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("RPC_UNSET_VARIABLE", raising=False)
    with pytest.raises(ConfigError, match=message):
        load_config_from_string(content)


def test_load_config_rejects_missing_and_wrong_type(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "missing.yaml")
    with pytest.raises(ConfigError, match="Unsupported"):
        load_config(tmp_path / "chain.toml")


def test_build_chain_uses_configured_order() -> None:
    config = ChainConfig(interceptors=("error_logging", "latency", "request_count"))
    chain = build_chain(config, InMemoryMetricsCollector(), NullErrorReporter())
    assert chain.names == ("ErrorLoggingInterceptor", "LatencyInterceptor", "RequestCountInterceptor")


def test_build_chain_passes_latency_settings() -> None:
    config = ChainConfig.from_dict({"interceptors": ["latency"], "latency": {"split_by_outcome": True}})
    chain = build_chain(config, InMemoryMetricsCollector(), NullErrorReporter())
    interceptor = chain.interceptors[0]
    assert isinstance(interceptor, LatencyInterceptor)
    assert interceptor._split_by_outcome is True


def test_build_chain_rejects_unknown_and_duplicate_names() -> None:
    with pytest.raises(ConfigurationError, match="Unknown interceptor"):
        build_chain(ChainConfig(interceptors=("nope",)), InMemoryMetricsCollector(), NullErrorReporter())
    with pytest.raises(ConfigurationError, match="Conflicting"):
        build_chain(ChainConfig(interceptors=("latency", "latency")), InMemoryMetricsCollector(), NullErrorReporter())


def test_register_custom_interceptor() -> None:
    async def tenant_guard(next_call, context):
        return await next_call(context)

    register_interceptor("tenant_guard", lambda config, collector, reporter: FunctionInterceptor(tenant_guard))
    chain = build_chain(
        ChainConfig(interceptors=("tenant_guard", "request_count")),
        InMemoryMetricsCollector(),
        NullErrorReporter(),
    )
    assert chain.names == ("tenant_guard", "RequestCountInterceptor")

    with pytest.raises(ConfigurationError, match="already registered"):
        register_interceptor("latency", lambda config, collector, reporter: FunctionInterceptor(tenant_guard))


def test_build_collector_and_reporter_backends() -> None:
    assert isinstance(build_collector(ChainConfig.from_dict({}).metrics), InMemoryMetricsCollector)
    assert isinstance(build_collector(ChainConfig.from_dict({"metrics": {"backend": "none"}}).metrics), NullMetricsCollector)

    queued = build_reporter(ChainConfig().reporter)
    assert isinstance(queued, QueueingErrorReporter)
    direct = build_reporter(ChainConfig.from_dict({"reporter": {"queue_size": 0}}).reporter)
    assert isinstance(direct, LoggingErrorReporter)
    otel = build_reporter(ChainConfig.from_dict({"reporter": {"backend": "otel", "queue_size": 50}}).reporter)
    assert isinstance(otel, OTelErrorReporter)


@pytest.mark.asyncio
async def test_configured_metadata_keys_carry_call_identifiers() -> None:
    config = load_config_from_string("error_logging:\n  metadata_keys: [trace_id, request_id]\n")
    reporter = RecordingReporter()
    chain = build_chain(config, InMemoryMetricsCollector(), reporter)

    async def fail(request):
        raise ValueError("bad input")

    context = CallContext(
        method="Recommend",
        metadata=normalize_metadata({"X-Trace-Id": "t1", "Authorization": "Bearer s3cret"}),
        request_id="req-1",
    )
    await chain.execute(fail, context)

    (report,) = reporter.reports
    assert report.metadata == {"trace_id": "t1", "request_id": "req-1"}
