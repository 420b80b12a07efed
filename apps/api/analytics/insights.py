"""Insight generator contract.

Insight text generation lives outside this service. The aggregate handed to
a generator is a copy, and a failing generator never affects the aggregate
returned to the caller.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Union

from analytics.models import CreatorMetrics, FamilyMetrics, Insight, InsightReport

logger = logging.getLogger(__name__)

Aggregate = Union[FamilyMetrics, CreatorMetrics]


class InsightGenerator(ABC):
    @abstractmethod
    async def generate(self, aggregate: Aggregate) -> List[Insight]:
        raise NotImplementedError


async def attach_insights(aggregate: Aggregate, generator: Optional[InsightGenerator]) -> InsightReport:
    if generator is None:
        return InsightReport(aggregate=aggregate)
    try:
        insights = await generator.generate(aggregate.model_copy(deep=True))
    except Exception as exc:
        logger.warning("Insight generation failed; returning aggregate without insights: %s", exc)
        return InsightReport(aggregate=aggregate, insight_error=str(exc) or exc.__class__.__name__)
    return InsightReport(aggregate=aggregate, insights=list(insights or []))
