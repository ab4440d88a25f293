"""Tests for observability configuration."""

from unittest.mock import MagicMock, patch

import pytest

from core.observability import (
    ObservabilityConfig,
    configure_observability,
    get_tracer,
)


@pytest.fixture(autouse=True)
def _fresh_configuration():
    configure_observability.cache_clear()
    yield
    configure_observability.cache_clear()


class TestObservabilityConfig:
    def test_disabled_by_default(self, monkeypatch):
        monkeypatch.delenv("ENABLE_OBSERVABILITY", raising=False)

        assert ObservabilityConfig.from_env().enabled is False

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("ENABLE_OBSERVABILITY", "Yes")
        monkeypatch.setenv("APPLICATIONINSIGHTS_CONNECTION_STRING", "InstrumentationKey=x")
        monkeypatch.setenv("OTEL_SERVICE_NAME", "relay-test")

        config = ObservabilityConfig.from_env()

        assert config.enabled is True
        assert config.connection_string == "InstrumentationKey=x"
        assert config.service_name == "relay-test"


class TestConfigureObservability:
    def test_returns_false_when_disabled(self, monkeypatch):
        monkeypatch.setenv("ENABLE_OBSERVABILITY", "false")

        assert configure_observability() is False

    def test_returns_false_without_connection_string(self, monkeypatch):
        monkeypatch.setenv("ENABLE_OBSERVABILITY", "true")
        monkeypatch.delenv("APPLICATIONINSIGHTS_CONNECTION_STRING", raising=False)

        assert configure_observability() is False

    def test_configures_exporter(self, monkeypatch):
        monkeypatch.setenv("ENABLE_OBSERVABILITY", "true")
        monkeypatch.setenv("APPLICATIONINSIGHTS_CONNECTION_STRING", "InstrumentationKey=x")
        monkeypatch.setenv("OTEL_SERVICE_NAME", "relay-test")
        monkeypatch.setenv("OTEL_PYTHON_FASTAPI_EXCLUDED_URLS", "health")
        exporter = MagicMock()
        fake_module = MagicMock(configure_azure_monitor=exporter)
        fake_module.__spec__ = None

        with patch.dict("sys.modules", {"azure.monitor.opentelemetry": fake_module}):
            assert configure_observability() is True

        exporter.assert_called_once_with(connection_string="InstrumentationKey=x")

    def test_exporter_failure_is_reported_as_disabled(self, monkeypatch):
        monkeypatch.setenv("ENABLE_OBSERVABILITY", "true")
        monkeypatch.setenv("APPLICATIONINSIGHTS_CONNECTION_STRING", "InstrumentationKey=x")
        monkeypatch.setenv("OTEL_SERVICE_NAME", "relay-test")
        monkeypatch.setenv("OTEL_PYTHON_FASTAPI_EXCLUDED_URLS", "health")
        fake_module = MagicMock()
        fake_module.configure_azure_monitor.side_effect = RuntimeError("bad string")
        fake_module.__spec__ = None

        with patch.dict("sys.modules", {"azure.monitor.opentelemetry": fake_module}):
            assert configure_observability() is False


def test_tracer_spans_work_without_exporter():
    tracer = get_tracer(__name__)

    with tracer.start_as_current_span("jobs.submit") as span:
        span.set_attribute("job.id", "job-1")
