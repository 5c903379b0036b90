"""OpenTelemetry spans around guard decisions, transitions and effect execution."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Generator

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
	ConsoleSpanExporter,
	SimpleSpanProcessor,
	SpanExporter,
)

from orc.config import TracingConfig

logger = logging.getLogger(__name__)


class OrcTracer:
	"""Thin wrapper over an OpenTelemetry tracer.

	When tracing is disabled the OpenTelemetry NoOpTracer is used, so
	callers never need to check whether tracing is on.
	"""

	def __init__(self, config: TracingConfig | None = None, exporter: SpanExporter | None = None) -> None:
		self._config = config or TracingConfig()
		self._provider: TracerProvider | None = None

		if not self._config.enabled:
			self._tracer: trace.Tracer = trace.NoOpTracer()
			return

		resource = Resource.create({"service.name": self._config.service_name})
		self._provider = TracerProvider(resource=resource)
		if exporter is None and self._config.exporter == "console":
			exporter = ConsoleSpanExporter()
		if exporter is not None:
			self._provider.add_span_processor(SimpleSpanProcessor(exporter))
		else:
			logger.debug("Tracing enabled without exporter (%s)", self._config.exporter)
		self._tracer = self._provider.get_tracer("orc")

	@classmethod
	def disabled(cls) -> OrcTracer:
		return cls(TracingConfig(enabled=False))

	@contextmanager
	def span(self, name: str, **attributes: Any) -> Generator[Any, None, None]:
		with self._tracer.start_as_current_span(name) as span:
			for key, value in attributes.items():
				if value is not None:
					span.set_attribute(f"orc.{key}", value if isinstance(value, (str, bool, int, float)) else str(value))
			yield span

	def shutdown(self) -> None:
		if self._provider is not None:
			self._provider.shutdown()
