"""Aggregate cache keyed by (entity id, entity type, period, range start, range end).

Hits are returned without freshness checks and writes are last-writer-wins.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import redis.asyncio as redis
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from analytics.models import EntityType, MetricPeriod
from models.aggregate_metric import AggregateMetricSnapshot


@dataclass(frozen=True)
class AggregateCacheKey:
    entity_id: str
    entity_type: EntityType
    period: MetricPeriod
    range_start: datetime
    range_end: datetime

    @property
    def start_token(self) -> str:
        return self.range_start.isoformat()

    @property
    def end_token(self) -> str:
        return self.range_end.isoformat()

    def as_string(self) -> str:
        return ":".join(
            (self.entity_type.value, self.entity_id, self.period.value, self.start_token, self.end_token)
        )


class AggregateCache(ABC):
    @abstractmethod
    async def get(self, key: AggregateCacheKey) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def put(self, key: AggregateCacheKey, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class InMemoryAggregateCache(AggregateCache):
    def __init__(self) -> None:
        self._entries: Dict[str, Dict[str, Any]] = {}

    async def get(self, key: AggregateCacheKey) -> Optional[Dict[str, Any]]:
        return self._entries.get(key.as_string())

    async def put(self, key: AggregateCacheKey, payload: Dict[str, Any]) -> None:
        self._entries[key.as_string()] = payload

    def clear(self) -> None:
        self._entries.clear()


class SqlAggregateCache(AggregateCache):
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def get(self, key: AggregateCacheKey) -> Optional[Dict[str, Any]]:
        async with self._session_maker() as db:
            row = await self._row(db, key)
            return dict(row.payload_json) if row is not None else None

    async def put(self, key: AggregateCacheKey, payload: Dict[str, Any]) -> None:
        async with self._session_maker() as db:
            row = await self._row(db, key)
            if row is None:
                db.add(
                    AggregateMetricSnapshot(
                        entity_id=key.entity_id,
                        entity_type=key.entity_type.value,
                        period=key.period.value,
                        range_start=key.start_token,
                        range_end=key.end_token,
                        payload_json=payload,
                    )
                )
            else:
                row.payload_json = payload
            try:
                await db.commit()
            except IntegrityError:
                # A concurrent writer inserted the same key first; overwrite it.
                await db.rollback()
                row = await self._row(db, key)
                if row is None:
                    raise
                row.payload_json = payload
                await db.commit()

    @staticmethod
    async def _row(db: AsyncSession, key: AggregateCacheKey) -> Optional[AggregateMetricSnapshot]:
        result = await db.execute(
            select(AggregateMetricSnapshot).where(
                AggregateMetricSnapshot.entity_id == key.entity_id,
                AggregateMetricSnapshot.entity_type == key.entity_type.value,
                AggregateMetricSnapshot.period == key.period.value,
                AggregateMetricSnapshot.range_start == key.start_token,
                AggregateMetricSnapshot.range_end == key.end_token,
            )
        )
        return result.scalar_one_or_none()


class RedisAggregateCache(AggregateCache):
    def __init__(
        self,
        redis_url: str,
        *,
        ttl_seconds: int = 3600,
        client_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._redis_url = redis_url
        self._ttl_seconds = max(int(ttl_seconds), 1)
        self._client_factory = client_factory

    def _client(self):
        if self._client_factory is not None:
            return self._client_factory()
        return redis.from_url(self._redis_url, decode_responses=True)

    @staticmethod
    def _redis_key(key: AggregateCacheKey) -> str:
        return f"cfe:aggregate:{key.as_string()}"

    async def get(self, key: AggregateCacheKey) -> Optional[Dict[str, Any]]:
        client = self._client()
        try:
            raw = await client.get(self._redis_key(key))
        finally:
            await client.aclose()
        if not raw:
            return None
        parsed = json.loads(raw)
        return parsed if isinstance(parsed, dict) else None

    async def put(self, key: AggregateCacheKey, payload: Dict[str, Any]) -> None:
        client = self._client()
        try:
            await client.setex(
                self._redis_key(key),
                self._ttl_seconds,
                json.dumps(payload, separators=(",", ":"), ensure_ascii=True),
            )
        finally:
            await client.aclose()
