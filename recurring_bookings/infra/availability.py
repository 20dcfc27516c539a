"""Adapters for the external availability collaborator consulted before a reschedule."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Any, Protocol

import httpx

from recurring_bookings.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilityQuery:
    target_date: date
    target_time: time
    service_id: str | None = None
    staff_id: str | None = None
    customer_id: str | None = None
    series_id: str | None = None
    instance_id: int | None = None

    def as_params(self) -> dict[str, str]:
        params = {
            "date": self.target_date.isoformat(),
            "time": self.target_time.strftime("%H:%M"),
            "service_id": self.service_id,
            "staff_id": self.staff_id,
            "customer_id": self.customer_id,
            "series_id": self.series_id,
            "exclude_instance_id": str(self.instance_id) if self.instance_id is not None else None,
        }
        return {key: value for key, value in params.items() if value is not None}


class AvailabilityChecker(Protocol):
    async def is_available(self, query: AvailabilityQuery) -> bool: ...


class StubAvailabilityChecker:
    """Reports every slot as free; used in development and when no collaborator is configured."""

    async def is_available(self, query: AvailabilityQuery) -> bool:
        logger.debug(
            "availability_stub_check",
            extra={"extra": {"date": query.target_date.isoformat()}},
        )
        return True


class HttpAvailabilityChecker:
    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.transport = transport

    async def is_available(self, query: AvailabilityQuery) -> bool:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        # The caller owns the timeout, so the client does not impose its own.
        async with httpx.AsyncClient(timeout=None, transport=self.transport) as client:
            response = await client.get(
                f"{self.base_url}/availability",
                params=query.as_params(),
                headers=headers,
            )
            response.raise_for_status()
        payload: dict[str, Any] = response.json()
        if "available" not in payload:
            raise ValueError("availability response missing 'available'")
        return bool(payload["available"])


def build_availability_checker(app_settings: Settings) -> AvailabilityChecker:
    if app_settings.availability_mode == "http":
        if not app_settings.availability_base_url:
            raise RuntimeError("AVAILABILITY_BASE_URL is required when availability_mode=http")
        return HttpAvailabilityChecker(
            app_settings.availability_base_url,
            api_key=app_settings.availability_api_key,
        )
    return StubAvailabilityChecker()
