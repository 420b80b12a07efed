"""Metrics standardization and aggregation router."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from analytics.insights import attach_insights
from analytics.models import DateRange, MetricPeriod
from analytics.standardization import standardize, standardize_time_series
from content_graph.errors import ContentGraphError
from dependencies import ServiceContainer, get_services
from routers.errors import http_error
from routers.rate_limit import analysis_rate_limit

router = APIRouter()
logger = logging.getLogger(__name__)


class StandardizeRequest(BaseModel):
    platform: str
    content_type: str
    content_id: Optional[str] = None
    metrics: Dict[str, Any] = {}


class TimeSeriesRequest(BaseModel):
    platform: str
    content_type: str
    content_id: Optional[str] = None
    points: List[Dict[str, Any]] = []


class DailyMetricsRequest(BaseModel):
    day: date
    metrics: Dict[str, Any] = {}


def _date_range(start: Optional[datetime], end: Optional[datetime]) -> Optional[DateRange]:
    if start is None and end is None:
        return None
    if start is None or end is None:
        raise HTTPException(status_code=422, detail="Both start and end are required for a custom range.")
    return DateRange(start=start, end=end)


@router.post("/standardize")
async def standardize_metrics(request: StandardizeRequest):
    try:
        metrics = standardize(
            request.metrics,
            request.platform,
            request.content_type,
            content_id=request.content_id,
        )
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return metrics.model_dump(mode="json")


@router.post("/standardize/time-series")
async def standardize_series(request: TimeSeriesRequest):
    try:
        series = standardize_time_series(
            request.points,
            request.platform,
            request.content_type,
            content_id=request.content_id,
        )
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return {"content_id": request.content_id, "series": [point.model_dump(mode="json") for point in series]}


@router.post("/metrics/{content_id}")
async def record_daily_metrics(
    content_id: str,
    request: DailyMetricsRequest,
    services: ServiceContainer = Depends(get_services),
):
    await services.metrics_repository.record_daily(content_id, request.day, request.metrics)
    logger.info("Recorded daily metrics for %s on %s", content_id, request.day.isoformat())
    return {"content_id": content_id, "date": request.day.isoformat(), "recorded": True}


@router.get("/families/{root_id}")
async def family_metrics(
    root_id: str,
    period: MetricPeriod = Query(default=MetricPeriod.MONTH),
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    include_insights: bool = Query(default=False),
    _rate_limit: None = Depends(analysis_rate_limit("family_metrics")),
    services: ServiceContainer = Depends(get_services),
):
    date_range = _date_range(start, end)
    try:
        aggregate = await services.aggregation.aggregate_family(root_id, period, date_range)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    if include_insights:
        report = await attach_insights(aggregate, services.insight_generator)
        return report.model_dump(mode="json")
    return aggregate.model_dump(mode="json")


@router.get("/creators/{creator_id}")
async def creator_metrics(
    creator_id: str,
    period: MetricPeriod = Query(default=MetricPeriod.MONTH),
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    include_insights: bool = Query(default=False),
    _rate_limit: None = Depends(analysis_rate_limit("creator_metrics")),
    services: ServiceContainer = Depends(get_services),
):
    date_range = _date_range(start, end)
    try:
        aggregate = await services.aggregation.aggregate_creator(creator_id, period, date_range)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    if include_insights:
        report = await attach_insights(aggregate, services.insight_generator)
        return report.model_dump(mode="json")
    return aggregate.model_dump(mode="json")
