"""Optional OpenTelemetry tracing for the REST app.

Installed through the ``tracing`` extra. Without it, or without an OTLP
endpoint, every function here is a no-op.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI

from fraterna.settings import settings

try:  # pragma: no cover - depends on the optional extra
	from opentelemetry import trace
	from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
	from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
	from opentelemetry.sdk.resources import Resource
	from opentelemetry.sdk.trace import TracerProvider
	from opentelemetry.sdk.trace.export import BatchSpanProcessor
except ImportError:  # pragma: no cover
	trace = None  # type: ignore

LOGGER = logging.getLogger(__name__)

# routes that would only add noise to traces
EXCLUDED_URLS = "health/live,health/ready,health/startup,metrics"

_provider: Optional[Any] = None


def _skip_reason() -> Optional[str]:
	if not settings.obs_tracing_enabled:
		return "disabled"
	if trace is None:
		return "dependencies_missing"
	if not settings.otel_exporter_otlp_endpoint:
		return "endpoint_missing"
	return None


def _build_provider() -> Any:
	resource = Resource.create(
		{
			"service.name": settings.service_name,
			"service.version": settings.git_commit,
			"deployment.environment": settings.environment,
		}
	)
	provider = TracerProvider(resource=resource)
	exporter = OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint, insecure=not settings.is_prod())
	provider.add_span_processor(BatchSpanProcessor(exporter))
	return provider


def init_tracing(app: FastAPI) -> Optional[Any]:
	global _provider
	if _provider is not None:
		return _provider
	reason = _skip_reason()
	if reason is not None:
		log = LOGGER.debug if reason == "disabled" else LOGGER.warning
		log("tracing_not_initialised", extra={"reason": reason})
		return None
	_provider = _build_provider()
	trace.set_tracer_provider(_provider)
	FastAPIInstrumentor.instrument_app(app, excluded_urls=EXCLUDED_URLS)
	LOGGER.info("tracing_initialised", extra={"endpoint": settings.otel_exporter_otlp_endpoint})
	return _provider


def shutdown_tracing() -> None:
	global _provider
	provider, _provider = _provider, None
	if provider is not None:
		provider.shutdown()
