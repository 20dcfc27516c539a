from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from recurring_bookings.domain.recurring_series.config import RecurringConfig
from recurring_bookings.infra.availability import AvailabilityChecker, build_availability_checker
from recurring_bookings.infra.metrics import Metrics, configure_metrics
from recurring_bookings.shared.circuit_breaker import CircuitBreaker

AVAILABILITY_CIRCUIT = "availability"


@dataclass
class AppServices:
    """Typed container for runtime services stored on `app.state.services`."""

    config: RecurringConfig
    availability: AvailabilityChecker
    availability_breaker: CircuitBreaker
    metrics: Metrics


def build_availability_breaker(app_settings) -> CircuitBreaker:
    return CircuitBreaker(
        name=AVAILABILITY_CIRCUIT,
        failure_threshold=app_settings.availability_circuit_failure_threshold,
        recovery_time=app_settings.availability_circuit_recovery_seconds,
        timeout_seconds=app_settings.availability_timeout_seconds,
    )


def build_app_services(
    app_settings,
    *,
    metrics: Metrics | None = None,
    availability: AvailabilityChecker | None = None,
) -> AppServices:
    metrics_client = metrics or configure_metrics(app_settings.metrics_enabled)
    return AppServices(
        config=RecurringConfig.from_settings(app_settings),
        availability=availability or build_availability_checker(app_settings),
        availability_breaker=build_availability_breaker(app_settings),
        metrics=metrics_client,
    )


def resolve_services(container_like: Any) -> AppServices | None:
    if isinstance(container_like, AppServices):
        return container_like
    if container_like is None:
        return None
    state = getattr(container_like, "state", container_like)
    return getattr(state, "services", None)
