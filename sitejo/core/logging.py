"""Logging and tracing set-up for the SITEJO API.

Ticket transitions carry structured fields through ``extra`` (see
:func:`transition_fields`). The console handler renders whichever of them a
record holds as ``key=value`` pairs in ``%(ticket_context)s``, so one format
string serves every logger.
"""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from sitejo.core.config import Settings

TICKET_FIELDS = ("ticket_id", "ticket_action", "old_status", "new_status", "actor_id")

_TRACER_INITIALISED = False


def transition_fields(
    ticket_id: str,
    action: Any,
    old_status: Any = None,
    new_status: Any = None,
    actor_id: str | None = None,
) -> dict[str, str | None]:
    """Build the ``extra`` mapping for a ticket log record; enums log by value."""

    def plain(value: Any) -> str | None:
        if value is None:
            return None
        return str(getattr(value, "value", value))

    return {
        "ticket_id": ticket_id,
        "ticket_action": plain(action),
        "old_status": plain(old_status),
        "new_status": plain(new_status),
        "actor_id": actor_id,
    }


class TicketContextFilter(logging.Filter):
    """Expose the ticket fields of a record as ``ticket_context``."""

    def filter(self, record: logging.LogRecord) -> bool:
        pairs = [
            f"{name}={getattr(record, name)}"
            for name in TICKET_FIELDS
            if getattr(record, name, None) is not None
        ]
        record.ticket_context = (" " + " ".join(pairs)) if pairs else ""
        return True


def _parse_headers(header_string: str | None) -> dict[str, str]:
    """Parse ``key=value`` pairs separated by commas into a header mapping."""

    if not header_string:
        return {}
    headers: dict[str, str] = {}
    for item in header_string.split(","):
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            continue
        headers[key.strip()] = value.strip()
    return headers


def configure_logging(settings: Settings) -> logging.Logger:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "ticket_context": {"()": TicketContextFilter},
            },
            "formatters": {
                "console": {"format": settings.log_format},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "console",
                    "filters": ["ticket_context"],
                    "level": level,
                }
            },
            "loggers": {
                "sitejo": {"level": level},
                # SQL echo is controlled by ``database_echo`` instead.
                "sqlalchemy.engine": {"level": logging.WARNING},
            },
            "root": {"handlers": ["console"], "level": level},
        }
    )
    return logging.getLogger("sitejo")


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Install an OTLP-exporting tracer provider once, when tracing is enabled."""

    global _TRACER_INITIALISED

    if _TRACER_INITIALISED or not settings.otel_enabled:
        return None

    provider = TracerProvider(
        resource=Resource(
            attributes={
                "service.name": settings.otel_service_name,
                "deployment.environment": settings.environment,
            }
        )
    )
    exporter = OTLPSpanExporter(
        endpoint=settings.otel_exporter_otlp_endpoint,
        headers=_parse_headers(settings.otel_exporter_otlp_headers) or None,
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    _TRACER_INITIALISED = True
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    global _TRACER_INITIALISED

    if provider is None:
        return
    provider.shutdown()
    _TRACER_INITIALISED = False
