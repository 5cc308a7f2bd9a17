"""
OpenTelemetry setup for verification runs.

Scenario phases are recorded as spans through the global tracer provider.
Without configuration the API's no-op provider is used; ``configure_tracing``
installs an SDK provider that prints finished spans to the console.
"""

from __future__ import annotations

import logging
from typing import Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from convergecore import __version__

logger = logging.getLogger(__name__)

TRACER_NAME = "convergecore.scenario"


def configure_tracing(service_name: str = "convergecore", console: bool = True) -> TracerProvider:
    resource = Resource.create({
        "service.name": service_name,
        "service.version": __version__,
    })
    provider = TracerProvider(resource=resource)
    if console:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    logger.debug(f"Tracing configured for {service_name}")
    return provider


def get_tracer(provider: Optional[trace.TracerProvider] = None) -> trace.Tracer:
    return trace.get_tracer(TRACER_NAME, tracer_provider=provider)
