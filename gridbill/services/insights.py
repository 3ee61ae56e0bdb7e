"""
Usage insights engine.

Evaluates aggregated meter statistics against fixed thresholds and returns an
ordered list of human-readable alerts. Three independent checks are exposed:

- ``generate_insights``: the rule list (trend, night load, voltage bounds,
  power factor, peak demand, voltage stability).
- ``detect_phase_imbalance``: three-phase contribution spread.
- ``check_budget_status``: month-to-date spend against a pro-rata budget.

``collect_insights`` strings the three together the way the API returns them.
Nothing here raises on bad numbers: zero or non-finite inputs simply do not
trigger the rule that would divide by them.

The power-factor thresholds below are the advisory ones shown to users and
are kept apart from the tariff thresholds in ``gridbill.services.billing``.

CHANGELOG:
- 2026-10-18: Require each phase exactly once for the imbalance check (STORY-031)
- 2026-10-15: Add collect_insights for the API layer (STORY-026)
- 2026-10-12: Initial creation (STORY-022)

TODO:
- None
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from gridbill.services.rounding import is_finite_number

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

TREND_THRESHOLD_PCT = 15.0
NIGHT_LOAD_THRESHOLD_KW = 1.5
NOMINAL_VOLTAGE = 230.0
SAFE_VOLTAGE_MIN = 207.0  # 90% of nominal
SAFE_VOLTAGE_MAX = 253.0  # 110% of nominal
LOW_POWER_FACTOR = 0.85
EXCELLENT_POWER_FACTOR = 0.95
PEAK_DEMAND_THRESHOLD_W = 5000.0
VOLTAGE_RANGE_THRESHOLD_V = 15.0
PHASE_IMBALANCE_THRESHOLD_PCT = 15.0
BUDGET_VARIANCE_THRESHOLD_PCT = 20.0
BUDGET_DAYS_IN_MONTH = 30


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


class Severity(str, Enum):
    """Alert severity, lowest first."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Insight:
    """A single alert shown to the user."""

    message: str
    severity: Severity
    icon: str


@dataclass(frozen=True)
class InsightStats:
    """Aggregated statistics for the period being evaluated.

    Attributes:
        current_energy_kwh: Energy consumed in the current period.
        prior_energy_kwh: Energy consumed in the comparable prior period.
        average_voltage: Mean voltage over the period.
        min_voltage: Lowest voltage seen.
        max_voltage: Highest voltage seen.
        night_load_kw: Mean load between 02:00 and 06:00.
        peak_power_w: Highest total power seen.
        power_factor: Mean power factor.
    """

    current_energy_kwh: float
    prior_energy_kwh: float
    average_voltage: float
    min_voltage: float
    max_voltage: float
    night_load_kw: float
    peak_power_w: float
    power_factor: float


@dataclass(frozen=True)
class PhaseContribution:
    """Share of total energy carried by one phase."""

    phase_id: int
    contribution_percent: float
    voltage: float = 0.0
    current: float = 0.0
    power: float = 0.0


@dataclass(frozen=True)
class BudgetInput:
    """Month-to-date spend and the budget it is measured against."""

    current_cost: float
    monthly_budget: float
    day_of_month: int


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _finite(*values: float) -> bool:
    return all(is_finite_number(v) for v in values)


def _energy_trend(stats: InsightStats) -> Insight | None:
    current, prior = stats.current_energy_kwh, stats.prior_energy_kwh
    if not _finite(current, prior) or prior <= 0:
        return None
    diff_pct = (current - prior) / prior * 100
    if abs(diff_pct) <= TREND_THRESHOLD_PCT:
        return None
    if diff_pct > 0:
        return Insight(
            message=f"Energy usage is {diff_pct:.0f}% higher than the previous period",
            severity=Severity.WARNING,
            icon="📈",
        )
    return Insight(
        message=(
            f"Great! Energy usage is {abs(diff_pct):.0f}% lower than the "
            "previous period"
        ),
        severity=Severity.INFO,
        icon="📉",
    )


def _night_load(stats: InsightStats) -> Insight | None:
    if not _finite(stats.night_load_kw) or stats.night_load_kw <= NIGHT_LOAD_THRESHOLD_KW:
        return None
    return Insight(
        message=(
            "High night-time base load detected (2-6 AM): "
            f"{stats.night_load_kw:.1f} kW"
        ),
        severity=Severity.INFO,
        icon="🌙",
    )


def _voltage_floor(stats: InsightStats) -> Insight | None:
    if not _finite(stats.min_voltage) or stats.min_voltage >= SAFE_VOLTAGE_MIN:
        return None
    return Insight(
        message=(
            f"Voltage dropped below safe range ({stats.min_voltage:.1f}V). "
            "Check electrical connections."
        ),
        severity=Severity.CRITICAL,
        icon="⚡",
    )


def _voltage_ceiling(stats: InsightStats) -> Insight | None:
    if not _finite(stats.max_voltage) or stats.max_voltage <= SAFE_VOLTAGE_MAX:
        return None
    return Insight(
        message=(
            f"Voltage spike detected ({stats.max_voltage:.1f}V). "
            "Risk of equipment damage."
        ),
        severity=Severity.CRITICAL,
        icon="⚠️",
    )


def _power_factor(stats: InsightStats) -> Insight | None:
    pf = stats.power_factor
    if not _finite(pf):
        return None
    if pf < LOW_POWER_FACTOR:
        return Insight(
            message=(
                f"Low power factor ({pf:.2f}). You may be incurring penalty "
                "charges. Consider installing capacitors."
            ),
            severity=Severity.WARNING,
            icon="💡",
        )
    if pf > EXCELLENT_POWER_FACTOR:
        return Insight(
            message=(
                f"Excellent power factor ({pf:.2f})! "
                "You may be eligible for incentives."
            ),
            severity=Severity.INFO,
            icon="⭐",
        )
    return None


def _peak_demand(stats: InsightStats) -> Insight | None:
    if not _finite(stats.peak_power_w) or stats.peak_power_w <= PEAK_DEMAND_THRESHOLD_W:
        return None
    return Insight(
        message=(
            f"High peak demand detected: {stats.peak_power_w / 1000:.1f} kW. "
            "Consider load shifting to reduce demand charges."
        ),
        severity=Severity.WARNING,
        icon="📊",
    )


def _voltage_stability(stats: InsightStats) -> Insight | None:
    if not _finite(stats.min_voltage, stats.max_voltage):
        return None
    voltage_range = stats.max_voltage - stats.min_voltage
    if voltage_range <= VOLTAGE_RANGE_THRESHOLD_V:
        return None
    return Insight(
        message=(
            f"Unstable voltage detected (±{voltage_range / 2:.1f}V variation). "
            "May affect sensitive equipment."
        ),
        severity=Severity.WARNING,
        icon="🔌",
    )


# Evaluation order is the order insights are returned in.
_RULES = (
    _energy_trend,
    _night_load,
    _voltage_floor,
    _voltage_ceiling,
    _power_factor,
    _peak_demand,
    _voltage_stability,
)

ALL_NORMAL = Insight(
    message="All systems operating normally. Energy consumption is stable.",
    severity=Severity.INFO,
    icon="✅",
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def generate_insights(stats: InsightStats) -> list[Insight]:
    """Evaluate every rule against the statistics.

    Args:
        stats: Aggregated statistics for the period.

    Returns:
        list[Insight]: Triggered insights in rule order, or a single
        "all normal" info insight when no rule fired.
    """
    insights = [insight for rule in _RULES if (insight := rule(stats)) is not None]
    if not insights:
        insights.append(ALL_NORMAL)
    return insights


def detect_phase_imbalance(phase1: float, phase2: float, phase3: float) -> Insight | None:
    """Flag uneven load distribution across three phases.

    Args:
        phase1: Contribution of phase 1 in percent.
        phase2: Contribution of phase 2 in percent.
        phase3: Contribution of phase 3 in percent.

    Returns:
        Insight | None: A warning when the largest deviation from the mean
        exceeds 15% of the mean, otherwise None.
    """
    contributions = (phase1, phase2, phase3)
    if not _finite(*contributions):
        return None
    average = sum(contributions) / 3
    if average <= 0:
        return None
    max_deviation = max(abs(p - average) for p in contributions)
    deviation_pct = max_deviation / average * 100
    if deviation_pct <= PHASE_IMBALANCE_THRESHOLD_PCT:
        return None
    return Insight(
        message=(
            f"Phase imbalance detected: {deviation_pct:.0f}% deviation. "
            "Balance loads across phases for optimal efficiency."
        ),
        severity=Severity.WARNING,
        icon="⚖️",
    )


def check_budget_status(
    current_cost: float,
    monthly_budget: float,
    day_of_month: int,
) -> Insight | None:
    """Compare month-to-date spend with a linear pro-rata budget.

    Returns:
        Insight | None: Warning when more than 20% over the expected spend,
        info when more than 20% under, otherwise None.
    """
    if not _finite(current_cost, monthly_budget, day_of_month):
        return None
    expected = monthly_budget / BUDGET_DAYS_IN_MONTH * day_of_month
    if expected <= 0:
        return None
    variance = (current_cost - expected) / expected * 100
    if variance > BUDGET_VARIANCE_THRESHOLD_PCT:
        return Insight(
            message=(
                f"You're {variance:.0f}% over budget for this point in the month. "
                f"Current: Rs {current_cost:.2f}, Expected: Rs {expected:.2f}"
            ),
            severity=Severity.WARNING,
            icon="💰",
        )
    if variance < -BUDGET_VARIANCE_THRESHOLD_PCT:
        return Insight(
            message=f"Great job! You're {abs(variance):.0f}% under budget this month.",
            severity=Severity.INFO,
            icon="💵",
        )
    return None


def collect_insights(
    stats: InsightStats,
    phases: Sequence[PhaseContribution] | None = None,
    budget: BudgetInput | None = None,
) -> list[Insight]:
    """Run the rule list, then append phase and budget insights if any.

    Args:
        stats: Aggregated statistics for the period.
        phases: Per-phase contributions. Ignored unless phases 1, 2 and 3
            each appear exactly once.
        budget: Month-to-date spend and budget, if the user has one.

    Returns:
        list[Insight]: Combined insights, rule insights first.
    """
    insights = generate_insights(stats)

    if phases:
        by_phase = {p.phase_id: p.contribution_percent for p in phases}
        if len(phases) == 3 and sorted(by_phase) == [1, 2, 3]:
            imbalance = detect_phase_imbalance(by_phase[1], by_phase[2], by_phase[3])
            if imbalance is not None:
                insights.append(imbalance)
        else:
            logger.warning(
                "Skipping phase imbalance check: need phases 1-3 once each, got %s",
                sorted(p.phase_id for p in phases),
            )

    if budget is not None:
        status = check_budget_status(
            budget.current_cost, budget.monthly_budget, budget.day_of_month
        )
        if status is not None:
            insights.append(status)

    logger.debug("Collected %d insight(s)", len(insights))
    return insights
