"""Raw daily metrics storage keyed by (content id, date)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.daily_metric import DailyMetric


def _day(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


class MetricsRepository(ABC):
    """Source of raw platform payloads for the aggregation fan-out."""

    @abstractmethod
    async def record_daily(self, content_id: str, day: date, payload: Mapping[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def daily_metrics(self, content_id: str, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        """Rows within [start, end] by calendar day, oldest first, each carrying its ``date``."""
        raise NotImplementedError


class InMemoryMetricsRepository(MetricsRepository):
    def __init__(self) -> None:
        self._rows: Dict[Tuple[str, date], Dict[str, Any]] = {}

    async def record_daily(self, content_id: str, day: date, payload: Mapping[str, Any]) -> None:
        self._rows[(content_id, _day(day))] = dict(payload)

    async def daily_metrics(self, content_id: str, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        first, last = _day(start), _day(end)
        return [
            {**payload, "date": day.isoformat()}
            for (row_id, day), payload in sorted(self._rows.items(), key=lambda item: item[0][1])
            if row_id == content_id and first <= day <= last
        ]


class SqlMetricsRepository(MetricsRepository):
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def record_daily(self, content_id: str, day: date, payload: Mapping[str, Any]) -> None:
        metric_date = _day(day)
        async with self._session_maker() as db:
            row = await db.get(DailyMetric, (content_id, metric_date))
            if row is None:
                row = DailyMetric(content_id=content_id, metric_date=metric_date)
                db.add(row)
            row.payload_json = dict(payload)
            await db.commit()

    async def daily_metrics(self, content_id: str, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        async with self._session_maker() as db:
            result = await db.execute(
                select(DailyMetric)
                .where(
                    DailyMetric.content_id == content_id,
                    DailyMetric.metric_date >= _day(start),
                    DailyMetric.metric_date <= _day(end),
                )
                .order_by(DailyMetric.metric_date)
            )
            return [
                {**(row.payload_json or {}), "date": row.metric_date.isoformat()}
                for row in result.scalars().all()
            ]
