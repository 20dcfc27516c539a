import logging
import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from recurring_bookings.domain.recurring_series import actions
from recurring_bookings.domain.recurring_series import schemas
from recurring_bookings.domain.recurring_series import service as recurring_service
from recurring_bookings.domain.recurring_series.config import RecurringConfig
from recurring_bookings.domain.recurring_series.db_models import RecurringSeries, SeriesExclusion
from recurring_bookings.domain.recurring_series.describe import describe
from recurring_bookings.domain.recurring_series.patterns import OccurrenceCount
from recurring_bookings.domain.recurring_series.preview import preview
from recurring_bookings.infra.db import get_db_session
from recurring_bookings.services import AppServices, resolve_services

router = APIRouter(prefix="/v1/recurring", tags=["recurring"])
logger = logging.getLogger(__name__)


def get_services(request: Request) -> AppServices:
    services = resolve_services(request.app)
    if services is None:
        raise RuntimeError("app.state.services is not configured")
    return services


def get_config(services: AppServices = Depends(get_services)) -> RecurringConfig:
    return services.config


def get_today(config: RecurringConfig = Depends(get_config)) -> date:
    return config.today()


def _serialize_series(series: RecurringSeries) -> dict:
    pattern = recurring_service.series_pattern(series)
    end_condition = recurring_service.series_end_condition(series)
    return {
        "series_id": series.series_id,
        "status": series.status,
        "start_date": series.start_date,
        "start_time": series.start_time,
        "pattern": schemas.pattern_payload(pattern),
        "end_condition": schemas.end_condition_payload(end_condition),
        "description": describe(pattern, end_condition),
        "service_id": series.service_id,
        "staff_id": series.staff_id,
        "customer_id": series.customer_id,
        "master_booking_id": series.master_booking_id,
        "meta": series.template_meta or {},
        "cancel_reason": series.cancel_reason,
        "cancelled_at": series.cancelled_at,
        "created_at": series.created_at,
    }


def _serialize_exclusion(exclusion: SeriesExclusion) -> schemas.ExclusionResponse:
    return schemas.ExclusionResponse(
        exclusion_id=exclusion.exclusion_id,
        type=exclusion.exclusion_type,
        date=exclusion.exclusion_date,
        day_of_week=exclusion.day_of_week,
        start_date=exclusion.range_start,
        end_date=exclusion.range_end,
        reason=exclusion.reason,
        created_at=exclusion.created_at,
    )


@router.get("/patterns", response_model=list[schemas.PatternCatalogEntry])
async def list_patterns(config: RecurringConfig = Depends(get_config)) -> list[schemas.PatternCatalogEntry]:
    return [schemas.PatternCatalogEntry(**entry) for entry in recurring_service.pattern_catalog(config)]


@router.post("/preview", response_model=schemas.PreviewResponse)
async def get_recurrence_preview(
    request: schemas.PreviewRequest,
    config: RecurringConfig = Depends(get_config),
) -> schemas.PreviewResponse:
    end_condition = (
        request.end_condition.to_domain()
        if request.end_condition
        else OccurrenceCount(config.default_occurrence_limit)
    )
    result = preview(
        request.pattern.to_domain(),
        request.start_date,
        end_condition,
        request.preview_count,
        config=config,
    )
    return schemas.PreviewResponse(
        description=result.description,
        dates=[
            schemas.PreviewDateResponse(
                date=item.date, day_label=item.day_label, formatted_date=item.formatted_date
            )
            for item in result.dates
        ],
        total_count=result.total_count,
    )


@router.post(
    "/series",
    response_model=schemas.SeriesCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_series(
    request: schemas.SeriesCreateRequest,
    session: AsyncSession = Depends(get_db_session),
    config: RecurringConfig = Depends(get_config),
) -> schemas.SeriesCreateResponse:
    template = recurring_service.SeriesTemplate(
        start_time=request.start_time,
        service_id=request.service_id,
        staff_id=request.staff_id,
        customer_id=request.customer_id,
        master_booking_id=request.master_booking_id,
        meta=request.meta,
    )
    series, instances = await recurring_service.create_series(
        session,
        start_date=request.start_date,
        pattern=request.pattern.to_domain(),
        end_condition=request.end_condition.to_domain() if request.end_condition else None,
        template=template,
        config=config,
    )
    return schemas.SeriesCreateResponse(
        series=schemas.SeriesResponse(**_serialize_series(series)),
        instances=[schemas.InstanceResponse.model_validate(instance) for instance in instances],
    )


@router.get("/series", response_model=schemas.SeriesListResponse)
async def list_series(
    status_filter: schemas.SeriesStatusLiteral | None = Query(default=None, alias="status"),
    customer_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_db_session),
) -> schemas.SeriesListResponse:
    series_list = await recurring_service.list_series(
        session, status=status_filter, customer_id=customer_id, limit=limit, offset=offset
    )
    return schemas.SeriesListResponse(
        items=[schemas.SeriesResponse(**_serialize_series(series)) for series in series_list]
    )


@router.get("/series/{series_id}", response_model=schemas.SeriesDetailResponse)
async def get_series(
    series_id: uuid.UUID,
    session: AsyncSession = Depends(get_db_session),
) -> schemas.SeriesDetailResponse:
    detail = await recurring_service.get_series_detail(session, series_id)
    return schemas.SeriesDetailResponse(
        **_serialize_series(detail.series),
        stats=schemas.SeriesStats(**detail.stats),
    )


@router.get("/series/{series_id}/instances", response_model=schemas.InstanceListResponse)
async def get_series_instances(
    series_id: uuid.UUID,
    status_filter: schemas.InstanceStatusLiteral | None = Query(default=None, alias="status"),
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_db_session),
) -> schemas.InstanceListResponse:
    instances = await recurring_service.get_series_instances(
        session,
        series_id,
        status=status_filter,
        from_date=from_date,
        to_date=to_date,
        limit=limit,
        offset=offset,
    )
    return schemas.InstanceListResponse(
        series_id=series_id,
        items=[schemas.InstanceResponse.model_validate(instance) for instance in instances],
    )


@router.post("/series/{series_id}/extend", response_model=schemas.ExtendResponse)
async def extend_series(
    series_id: uuid.UUID,
    request: schemas.ExtendRequest | None = None,
    session: AsyncSession = Depends(get_db_session),
    config: RecurringConfig = Depends(get_config),
    today: date = Depends(get_today),
) -> schemas.ExtendResponse:
    created = await recurring_service.extend_window(
        session,
        series_id,
        config=config,
        horizon_days=request.horizon_days if request else None,
        today=today,
    )
    return schemas.ExtendResponse(series_id=series_id, instances_created=created)


@router.post("/series/{series_id}/cancel", response_model=schemas.CancelSeriesResponse)
async def cancel_recurring_series(
    series_id: uuid.UUID,
    request: schemas.ReasonRequest | None = None,
    session: AsyncSession = Depends(get_db_session),
) -> schemas.CancelSeriesResponse:
    cancelled = await recurring_service.cancel_series(
        session, series_id, request.reason if request else None
    )
    return schemas.CancelSeriesResponse(series_id=series_id, instances_cancelled=cancelled)


@router.get("/series/{series_id}/exclusions", response_model=schemas.ExclusionListResponse)
async def list_exclusions(
    series_id: uuid.UUID,
    session: AsyncSession = Depends(get_db_session),
) -> schemas.ExclusionListResponse:
    exclusions = await recurring_service.list_exclusions(session, series_id)
    return schemas.ExclusionListResponse(
        series_id=series_id,
        items=[_serialize_exclusion(exclusion) for exclusion in exclusions],
    )


@router.post(
    "/series/{series_id}/exclusions",
    response_model=schemas.ExclusionCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_exclusion(
    series_id: uuid.UUID,
    request: schemas.ExclusionCreateRequest,
    session: AsyncSession = Depends(get_db_session),
    config: RecurringConfig = Depends(get_config),
    today: date = Depends(get_today),
) -> schemas.ExclusionCreateResponse:
    exclusion, skipped = await recurring_service.add_exclusion(
        session, series_id, request.to_rule(), config=config, today=today
    )
    return schemas.ExclusionCreateResponse(
        exclusion=_serialize_exclusion(exclusion), instances_skipped=skipped
    )


@router.post("/instances/{instance_id}/skip", response_model=schemas.InstanceResponse)
async def skip_instance(
    instance_id: int,
    request: schemas.ReasonRequest | None = None,
    session: AsyncSession = Depends(get_db_session),
    config: RecurringConfig = Depends(get_config),
) -> schemas.InstanceResponse:
    instance = await actions.skip_instance(
        session, instance_id, request.reason if request else None, config=config
    )
    return schemas.InstanceResponse.model_validate(instance)


@router.post("/instances/{instance_id}/reschedule", response_model=schemas.InstanceResponse)
async def reschedule_instance(
    instance_id: int,
    request: schemas.RescheduleRequest,
    session: AsyncSession = Depends(get_db_session),
    services: AppServices = Depends(get_services),
    today: date = Depends(get_today),
) -> schemas.InstanceResponse:
    instance = await actions.reschedule_instance(
        session,
        instance_id,
        request.new_date,
        new_time=request.new_time,
        availability=services.availability,
        breaker=services.availability_breaker,
        config=services.config,
        today=today,
    )
    return schemas.InstanceResponse.model_validate(instance)


@router.post("/instances/{instance_id}/complete", response_model=schemas.InstanceResponse)
async def complete_instance(
    instance_id: int,
    session: AsyncSession = Depends(get_db_session),
) -> schemas.InstanceResponse:
    instance = await actions.complete_instance(session, instance_id)
    return schemas.InstanceResponse.model_validate(instance)


@router.post("/instances/{instance_id}/cancel", response_model=schemas.InstanceResponse)
async def cancel_instance(
    instance_id: int,
    request: schemas.ReasonRequest | None = None,
    session: AsyncSession = Depends(get_db_session),
) -> schemas.InstanceResponse:
    instance = await actions.cancel_instance(session, instance_id, request.reason if request else None)
    return schemas.InstanceResponse.model_validate(instance)


@router.get(
    "/customers/{customer_id}/upcoming",
    response_model=list[schemas.UpcomingInstanceResponse],
)
async def list_upcoming_for_customer(
    customer_id: str,
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_db_session),
    config: RecurringConfig = Depends(get_config),
    today: date = Depends(get_today),
) -> list[schemas.UpcomingInstanceResponse]:
    rows = await recurring_service.list_upcoming_for_customer(
        session, customer_id, limit=limit, config=config, today=today
    )
    return [
        schemas.UpcomingInstanceResponse(
            **schemas.InstanceResponse.model_validate(instance).model_dump(),
            service_id=series.service_id,
            staff_id=series.staff_id,
        )
        for instance, series in rows
    ]
