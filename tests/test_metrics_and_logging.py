import json
import logging

import pytest
from fastapi.testclient import TestClient

from recurring_bookings.infra.db import get_db_session
from recurring_bookings.infra.logging import clear_log_context, configure_logging, update_log_context
from recurring_bookings.infra.metrics import configure_metrics
from recurring_bookings.main import create_app
from recurring_bookings.settings import Settings


@pytest.fixture()
def metrics_app(async_session_maker):
    app_settings = Settings(app_env="dev", metrics_enabled=True)
    metrics_app = create_app(app_settings)

    async def override_db_session():
        async with async_session_maker() as session:
            yield session

    metrics_app.dependency_overrides[get_db_session] = override_db_session
    metrics_app.state.db_session_factory = async_session_maker
    yield metrics_app
    configure_metrics(False)


def test_metrics_endpoint_exposes_domain_counters(metrics_app):
    with TestClient(metrics_app) as client:
        created = client.post(
            "/v1/recurring/series",
            json={
                "start_date": "2030-01-01",
                "start_time": "10:00",
                "pattern": {"kind": "daily"},
                "end_condition": {"kind": "count", "count": 2},
            },
        )
        assert created.status_code == 201
        response = client.get("/metrics")

    assert response.status_code == 200
    body = response.text
    assert 'recurring_series_total{action="created"} 1.0' in body
    assert 'recurring_instances_generated_total{source="initial"} 2.0' in body
    assert "http_request_latency_seconds" in body


def test_metrics_endpoint_requires_token_in_prod(async_session_maker):
    app_settings = Settings(app_env="prod", metrics_enabled=True, metrics_token="secret-token")
    prod_app = create_app(app_settings)
    prod_app.state.db_session_factory = async_session_maker
    try:
        with TestClient(prod_app) as client:
            assert client.get("/metrics").status_code == 401
            assert client.get("/metrics", headers={"Authorization": "Bearer secret-token"}).status_code == 200
            assert client.get("/metrics?token=secret-token").status_code == 200
    finally:
        configure_metrics(False)


def test_prod_metrics_without_token_refuses_to_start():
    with pytest.raises(RuntimeError):
        create_app(Settings(app_env="prod", metrics_enabled=True, metrics_token=None))
    configure_metrics(False)


def test_logging_is_json_with_context_and_redaction(capsys):
    configure_logging()
    logger = logging.getLogger("recurring-test")
    update_log_context(request_id="req-1")
    try:
        logger.info(
            "recurring_series_created",
            extra={"extra": {"series_id": "abc", "customer_email": "someone@example.com", "token": "t"}},
        )
    finally:
        clear_log_context()

    captured = capsys.readouterr()
    stream = (captured.out or captured.err).strip().splitlines()
    payload = json.loads(stream[-1])

    assert payload["message"] == "recurring_series_created"
    assert payload["request_id"] == "req-1"
    assert payload["series_id"] == "abc"
    assert payload["customer_email"] == "[REDACTED_EMAIL]"
    assert payload["token"] == "[REDACTED]"
