from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from recurring_bookings.domain.recurring_series import service as recurring_service
from recurring_bookings.domain.recurring_series.config import RecurringConfig

logger = logging.getLogger(__name__)

JOB_NAME = "recurring-extend"


async def run_recurring_extend(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    config: RecurringConfig | None = None,
    today: date | None = None,
) -> dict[str, int]:
    """Roll every active series forward to the configured horizon."""
    report = await recurring_service.extend_all_active_series(
        session_factory, config=config, today=today
    )
    if report.series_failed:
        logger.warning("recurring_extend_partial", extra={"extra": report.as_dict()})
    return report.as_dict()
