"""Helpers for call metadata carried in :class:`CallContext.metadata`.

Keys are normalized to lower case, matching gRPC and HTTP/2 header rules.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from rpc_interceptors.server.context import MetadataValue

__all__ = [
    "REQUEST_ID_KEY",
    "TRACEPARENT_KEY",
    "TRACE_ID_KEY",
    "TraceParent",
    "normalize_metadata",
    "parse_traceparent",
    "trace_id_from_metadata",
]

logger = logging.getLogger(__name__)

# W3C traceparent header format: {version}-{trace_id}-{span_id}-{trace_flags}
TRACEPARENT_KEY = "traceparent"
TRACE_ID_KEY = "x-trace-id"
REQUEST_ID_KEY = "x-request-id"


@dataclass(frozen=True, slots=True)
class TraceParent:
    trace_id: str
    span_id: str
    sampled: bool


def parse_traceparent(traceparent: str) -> TraceParent:
    """Parse a W3C traceparent header.

    Example: ``00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01``

    Raises:
        ValueError: If the header is malformed.
    """
    parts = traceparent.strip().split("-")
    if len(parts) != 4:
        raise ValueError(f"Invalid traceparent format: {traceparent}")

    _version, trace_id, span_id, trace_flags = parts
    if len(trace_id) != 32:
        raise ValueError(f"Invalid trace_id length: {trace_id}")
    if len(span_id) != 16:
        raise ValueError(f"Invalid span_id length: {span_id}")

    sampled = bool(int(trace_flags, 16) & 0x01)
    return TraceParent(trace_id=trace_id, span_id=span_id, sampled=sampled)


def normalize_metadata(
    pairs: Mapping[str, Any] | Iterable[tuple[str, Any]] | None,
) -> dict[str, MetadataValue]:
    """Lower-case keys; keep bytes values, stringify everything else."""
    if pairs is None:
        return {}
    items = pairs.items() if isinstance(pairs, Mapping) else pairs
    metadata: dict[str, MetadataValue] = {}
    for key, value in items:
        if value is None:
            continue
        metadata[str(key).lower()] = value if isinstance(value, bytes) else str(value)
    return metadata


def trace_id_from_metadata(metadata: Mapping[str, MetadataValue]) -> str | None:
    """Trace id from an explicit ``x-trace-id`` or a W3C ``traceparent``."""
    explicit = metadata.get(TRACE_ID_KEY)
    if isinstance(explicit, str) and explicit:
        return explicit
    traceparent = metadata.get(TRACEPARENT_KEY)
    if isinstance(traceparent, str) and traceparent:
        try:
            return parse_traceparent(traceparent).trace_id
        except ValueError as e:
            logger.debug("Failed to parse traceparent header: %s", e)
    return None
