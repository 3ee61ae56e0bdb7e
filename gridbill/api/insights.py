"""
Insights endpoints.

- POST /v1/insights evaluates caller-supplied statistics (plus optional
  phase contributions and budget) and returns the ordered insight list.
- GET /v1/insights reads the last 24 hours of a meter's telemetry, builds
  the statistics through the aggregation service and returns the same list.
  Results are cached in Redis for CACHE_TTL_S seconds (best effort).

CHANGELOG:
- 2026-10-17: Add GET /v1/insights with Redis cache (STORY-029)
- 2026-10-16: Initial creation (STORY-026)

TODO:
- None
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from pydantic import Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from gridbill.api.deps import CamelModel, get_db, get_meter_id
from gridbill.cache.redis_client import read_cached_insights, store_cached_insights
from gridbill.services.aggregation import query_insight_stats, query_phase_contributions
from gridbill.services.insights import (
    BudgetInput,
    Insight,
    InsightStats,
    PhaseContribution,
    collect_insights,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["insights"])


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class StatsIn(CamelModel):
    """Aggregated statistics for the evaluated period."""

    current_energy_kwh: float = Field(alias="currentEnergyKWh")
    prior_energy_kwh: float = Field(alias="priorEnergyKWh")
    average_voltage: float
    min_voltage: float
    max_voltage: float
    night_load_kw: float = Field(default=0.0, alias="nightLoadKW")
    peak_power_w: float = 0.0
    power_factor: float = 0.9


class PhaseIn(CamelModel):
    """Contribution of a single phase."""

    phase_id: int = Field(ge=1, le=3)
    contribution_percent: float = Field(ge=0, le=100)
    voltage: float = 0.0
    current: float = 0.0
    power: float = 0.0


class BudgetIn(CamelModel):
    """Month-to-date spend against a monthly budget."""

    current_cost: float = Field(ge=0)
    monthly_budget: float = Field(gt=0)
    day_of_month: int = Field(ge=1, le=31)


class InsightsIn(CamelModel):
    """Request body for POST /v1/insights."""

    stats: StatsIn
    phases: list[PhaseIn] | None = None
    budget: BudgetIn | None = None

    @field_validator("phases")
    @classmethod
    def phases_must_cover_three_phases(
        cls, v: list[PhaseIn] | None
    ) -> list[PhaseIn] | None:
        """Require phases 1, 2 and 3 exactly once when phases are given."""
        if v is not None and sorted(p.phase_id for p in v) != [1, 2, 3]:
            raise ValueError("phases must contain exactly one entry for phases 1, 2 and 3")
        return v


class InsightOut(CamelModel):
    """A single insight."""

    message: str
    severity: str
    icon: str

    @classmethod
    def from_insight(cls, insight: Insight) -> "InsightOut":
        """Build the response item from an engine Insight."""
        return cls(
            message=insight.message,
            severity=insight.severity.value,
            icon=insight.icon,
        )


class InsightsResponse(CamelModel):
    """Response for POST /v1/insights."""

    insights: list[InsightOut]


class MeterInsightsResponse(CamelModel):
    """Response for GET /v1/insights."""

    meter_id: str
    insights: list[InsightOut]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/insights", response_model=InsightsResponse)
async def evaluate_insights(
    payload: InsightsIn,
    meter_id: Annotated[str, Depends(get_meter_id)],
) -> InsightsResponse:
    """Evaluate posted statistics and return insights.

    Args:
        payload: Statistics, optional phases and optional budget.
        meter_id: Authenticated meter_id from bearer token.

    Returns:
        InsightsResponse: Ordered insights.
    """
    stats = InsightStats(**payload.stats.model_dump())
    phases = (
        [PhaseContribution(**p.model_dump()) for p in payload.phases]
        if payload.phases
        else None
    )
    budget = BudgetInput(**payload.budget.model_dump()) if payload.budget else None

    insights = collect_insights(stats, phases, budget)
    logger.debug("Evaluated %d insight(s) for meter %s", len(insights), meter_id)
    return InsightsResponse(insights=[InsightOut.from_insight(i) for i in insights])


@router.get("/insights", response_model=MeterInsightsResponse)
async def meter_insights(
    request: Request,
    meter_id: Annotated[str, Query(description="Meter identifier to evaluate.")],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MeterInsightsResponse:
    """Return insights computed from a meter's stored telemetry.

    Args:
        request: The incoming FastAPI request.
        meter_id: Meter to evaluate (query parameter).
        db: Async database session.

    Returns:
        MeterInsightsResponse: Meter id and ordered insights.

    Raises:
        HTTPException: 401 without a valid token, 403 if the token belongs
            to another meter.
    """
    await request.app.state.auth.require_meter(request, meter_id)

    cached = await read_cached_insights(meter_id)
    if cached is not None:
        return MeterInsightsResponse(
            meter_id=meter_id,
            insights=[InsightOut(**item) for item in cached],
        )

    stats = await query_insight_stats(db, meter_id)
    phases = await query_phase_contributions(db, meter_id)
    insights = [InsightOut.from_insight(i) for i in collect_insights(stats, phases)]

    settings = request.app.state.settings
    await store_cached_insights(
        meter_id,
        [item.model_dump() for item in insights],
        settings.cache_ttl_s,
    )

    return MeterInsightsResponse(meter_id=meter_id, insights=insights)
