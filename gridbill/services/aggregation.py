"""
Aggregation queries over the three-phase telemetry hypertables.

Turns raw meter rows into the resolved numbers the insights engine expects:
period statistics, per-phase energy contributions and the rolling 24-hour
InsightStats record. Time windows are computed in Python from an injectable
``now`` so the queries carry bound timestamps instead of ``now()``.

Missing aggregates (no rows in the window) degrade to neutral defaults:
0 energy, nominal voltage, 0 W and a 0.9 power factor.

CHANGELOG:
- 2026-10-18: Bucket night hours in UTC (STORY-031)
- 2026-10-16: Rewrite for three-phase meter statistics (STORY-027)

TODO:
- None
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gridbill.db.models import MeterTotal, PhaseReading
from gridbill.services.insights import NOMINAL_VOLTAGE, InsightStats, PhaseContribution
from gridbill.services.rounding import round_to

logger = logging.getLogger(__name__)

PERIOD_WINDOWS: dict[str, timedelta] = {
    "today": timedelta(hours=24),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}

INSIGHT_WINDOW = timedelta(hours=24)
# Night base load is sampled from 02:00 up to 06:00 UTC.
NIGHT_HOURS = (2, 5)
DEFAULT_POWER_FACTOR = 0.9


@dataclass(frozen=True)
class MeterStatistics:
    """Headline numbers for a meter over one period.

    Attributes:
        total_energy_kwh: Energy consumed in the period (2 dp).
        average_voltage: Mean voltage (1 dp).
        peak_power_w: Highest total power (whole watts).
    """

    total_energy_kwh: float
    average_voltage: float
    peak_power_w: float


def _or_default(value: float | None, default: float) -> float:
    return default if value is None else float(value)


async def query_statistics(
    db: AsyncSession,
    meter_id: str,
    period: str,
    now: datetime | None = None,
) -> MeterStatistics:
    """Query total energy, average voltage and peak power for a period.

    Args:
        db: Async database session.
        meter_id: Meter to query.
        period: One of ``today``, ``week`` or ``month``.
        now: End of the window; defaults to the current UTC time.

    Returns:
        MeterStatistics: Aggregated figures, neutral defaults when empty.

    Raises:
        KeyError: If period is not a PERIOD_WINDOWS key.
    """
    window = PERIOD_WINDOWS[period]
    now = now or datetime.now(UTC)

    stmt = select(
        func.sum(MeterTotal.total_energy_wh).label("total_energy_wh"),
        func.avg(MeterTotal.avg_voltage).label("avg_voltage"),
        func.max(MeterTotal.total_power).label("peak_power_w"),
    ).where(
        MeterTotal.meter_id == meter_id,
        MeterTotal.ts >= now - window,
    )
    result = await db.execute(stmt)
    row = result.mappings().one()

    return MeterStatistics(
        total_energy_kwh=round_to(_or_default(row["total_energy_wh"], 0.0) / 1000, 2),
        average_voltage=round_to(_or_default(row["avg_voltage"], NOMINAL_VOLTAGE), 1),
        peak_power_w=round_to(_or_default(row["peak_power_w"], 0.0), 0),
    )


async def query_phase_contributions(
    db: AsyncSession,
    meter_id: str,
    now: datetime | None = None,
) -> list[PhaseContribution]:
    """Query each phase's share of energy over the last 24 hours.

    Args:
        db: Async database session.
        meter_id: Meter to query.
        now: End of the window; defaults to the current UTC time.

    Returns:
        list[PhaseContribution]: One entry per phase with data, ordered by
        phase number. Contributions are 0 when no energy was recorded.
    """
    now = now or datetime.now(UTC)

    stmt = (
        select(
            PhaseReading.phase.label("phase"),
            func.avg(PhaseReading.voltage).label("avg_voltage"),
            func.avg(PhaseReading.current).label("avg_current"),
            func.avg(PhaseReading.power).label("avg_power"),
            func.sum(PhaseReading.energy_wh).label("energy_wh"),
        )
        .where(
            PhaseReading.meter_id == meter_id,
            PhaseReading.ts >= now - INSIGHT_WINDOW,
        )
        .group_by(PhaseReading.phase)
        .order_by(PhaseReading.phase)
    )
    result = await db.execute(stmt)
    rows = result.mappings().all()

    total_energy = sum(_or_default(row["energy_wh"], 0.0) for row in rows)
    contributions = []
    for row in rows:
        energy = _or_default(row["energy_wh"], 0.0)
        share = energy / total_energy * 100 if total_energy > 0 else 0.0
        contributions.append(
            PhaseContribution(
                phase_id=int(row["phase"]),
                contribution_percent=round_to(share, 1),
                voltage=round_to(_or_default(row["avg_voltage"], NOMINAL_VOLTAGE), 1),
                current=round_to(_or_default(row["avg_current"], 0.0), 2),
                power=round_to(_or_default(row["avg_power"], 0.0), 1),
            )
        )
    return contributions


async def query_insight_stats(
    db: AsyncSession,
    meter_id: str,
    now: datetime | None = None,
) -> InsightStats:
    """Assemble the InsightStats record for the last 24 hours.

    The current period is the last 24 hours and the prior period the 24
    hours before it. Voltage, peak and night-load figures cover the current
    period only.

    Args:
        db: Async database session.
        meter_id: Meter to query.
        now: End of the window; defaults to the current UTC time.

    Returns:
        InsightStats: Resolved statistics with neutral defaults for gaps.
    """
    now = now or datetime.now(UTC)
    current_start = now - INSIGHT_WINDOW
    prior_start = current_start - INSIGHT_WINDOW
    in_current = MeterTotal.ts >= current_start
    # Hour of day in UTC regardless of the session TimeZone.
    utc_hour = extract("hour", func.timezone("UTC", MeterTotal.ts))
    at_night = utc_hour.between(*NIGHT_HOURS)

    totals_stmt = select(
        func.sum(MeterTotal.total_energy_wh).filter(in_current).label("current_wh"),
        func.sum(MeterTotal.total_energy_wh).filter(~in_current).label("prior_wh"),
        func.avg(MeterTotal.avg_voltage).filter(in_current).label("avg_voltage"),
        func.min(MeterTotal.avg_voltage).filter(in_current).label("min_voltage"),
        func.max(MeterTotal.avg_voltage).filter(in_current).label("max_voltage"),
        func.max(MeterTotal.total_power).filter(in_current).label("peak_power_w"),
        func.avg(MeterTotal.total_power)
        .filter(in_current, at_night)
        .label("night_power_w"),
    ).where(
        MeterTotal.meter_id == meter_id,
        MeterTotal.ts >= prior_start,
    )
    totals = (await db.execute(totals_stmt)).mappings().one()

    pf_stmt = select(func.avg(PhaseReading.power_factor).label("power_factor")).where(
        PhaseReading.meter_id == meter_id,
        PhaseReading.ts >= current_start,
    )
    pf_row = (await db.execute(pf_stmt)).mappings().one()

    stats = InsightStats(
        current_energy_kwh=_or_default(totals["current_wh"], 0.0) / 1000,
        prior_energy_kwh=_or_default(totals["prior_wh"], 0.0) / 1000,
        average_voltage=_or_default(totals["avg_voltage"], NOMINAL_VOLTAGE),
        min_voltage=_or_default(totals["min_voltage"], NOMINAL_VOLTAGE),
        max_voltage=_or_default(totals["max_voltage"], NOMINAL_VOLTAGE),
        night_load_kw=_or_default(totals["night_power_w"], 0.0) / 1000,
        peak_power_w=_or_default(totals["peak_power_w"], 0.0),
        power_factor=_or_default(pf_row["power_factor"], DEFAULT_POWER_FACTOR),
    )
    logger.debug("Insight stats for meter %s: %s", meter_id, stats)
    return stats
