"""
OTLP span export for trace replays.

Endpoint, protocol and headers come from ``Settings`` (the standard
``OTEL_EXPORTER_OTLP_*`` variables) unless the caller overrides them. The
protocol-specific exporter package is imported only when it is used.
"""

import logging

from opentelemetry.sdk.trace.export import SpanExporter

from ..config import Settings

logger = logging.getLogger(__name__)

PROTOCOLS = ("http", "grpc")
TRACES_PATH = "/v1/traces"


def traces_endpoint(endpoint: str, protocol: str) -> str:
    """The URL (http) or host:port (grpc) an exporter should send spans to."""
    if protocol == "grpc":
        return endpoint.split("://", 1)[-1].rstrip("/")
    base = endpoint.rstrip("/")
    return base if base.endswith(TRACES_PATH) else base + TRACES_PATH


def create_otlp_trace_exporter(
    settings: Settings,
    endpoint: str | None = None,
    protocol: str | None = None,
) -> SpanExporter:
    protocol = protocol or settings.otlp_protocol
    if protocol not in PROTOCOLS:
        raise ValueError(f"Unknown OTLP protocol: {protocol!r} (expected 'http' or 'grpc')")
    target = traces_endpoint(endpoint or settings.otlp_endpoint, protocol)
    headers = dict(settings.otlp_headers) or None
    logger.info("Exporting spans over OTLP/%s to %s", protocol, target)

    if protocol == "grpc":
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        return OTLPSpanExporter(endpoint=target, headers=headers, insecure=True)

    from opentelemetry.exporter.otlp.proto.http.trace_exporter import (  # type: ignore[assignment]
        OTLPSpanExporter,
    )

    return OTLPSpanExporter(endpoint=target, headers=headers)
