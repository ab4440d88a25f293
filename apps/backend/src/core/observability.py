"""OpenTelemetry tracing, optionally exported to Azure Monitor.

`configure_observability()` must run before FastAPI and httpx are imported so
their auto-instrumentation hooks in. Export is opt-in:

- ENABLE_OBSERVABILITY=true
- APPLICATIONINSIGHTS_CONNECTION_STRING=<App Insights connection string>
- the `observability` extra installed (azure-monitor-opentelemetry)

Without export, `get_tracer()` still works and hands out the API's no-op
tracer. Span attributes should carry job ids, hostnames and status codes;
never full submitted URLs, worker results or upstream bodies.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from opentelemetry import trace


logger = logging.getLogger(__name__)

_TRUTHY = frozenset({"true", "1", "yes", "on"})

# Health probes would otherwise dominate the trace volume.
EXCLUDED_URLS = "health,health/,favicon.ico"


@dataclass(frozen=True, slots=True)
class ObservabilityConfig:
    enabled: bool
    connection_string: str | None
    service_name: str

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        return cls(
            enabled=os.getenv("ENABLE_OBSERVABILITY", "false").lower() in _TRUTHY,
            connection_string=os.getenv("APPLICATIONINSIGHTS_CONNECTION_STRING")
            or None,
            service_name=os.getenv("OTEL_SERVICE_NAME", "jobrelay-backend"),
        )


@lru_cache
def configure_observability() -> bool:
    """Install the Azure Monitor exporter when enabled.

    Returns True only if telemetry export was configured. Runs once per
    process; later calls return the first result.
    """
    config = ObservabilityConfig.from_env()
    if not config.enabled:
        logger.info("Observability disabled; set ENABLE_OBSERVABILITY=true to export")
        return False
    if config.connection_string is None:
        logger.warning(
            "Observability enabled but APPLICATIONINSIGHTS_CONNECTION_STRING is unset"
        )
        return False

    try:
        from azure.monitor.opentelemetry import configure_azure_monitor
    except ImportError:
        logger.warning(
            "azure-monitor-opentelemetry is not installed; "
            "install the 'observability' extra to export telemetry"
        )
        return False

    os.environ.setdefault("OTEL_SERVICE_NAME", config.service_name)
    os.environ.setdefault("OTEL_PYTHON_FASTAPI_EXCLUDED_URLS", EXCLUDED_URLS)
    try:
        configure_azure_monitor(connection_string=config.connection_string)
    except Exception:
        logger.exception("Failed to configure Azure Monitor exporter")
        return False

    logger.info("Azure Monitor export configured for '%s'", config.service_name)
    return True


def get_tracer(name: str) -> trace.Tracer:
    """Tracer for custom spans, e.g. `get_tracer(__name__)` at module level."""
    return trace.get_tracer(name)
