"""
Tariff billing engine for three-phase connections.

Converts a monthly energy total plus a connection category into a structured
Bill: per-slab breakdown, fixed charge, maximum-demand charge, power-factor
penalty/incentive and a 30-day daily-cost projection.

Each connection category owns a constant rate table kept next to the
calculator that reads it. ``calculate_bill`` selects the calculator from the
``_CALCULATORS`` mapping, so adding a category means adding one table entry.

This module is pure: no I/O, no shared mutable state, no clock access unless
the caller omits ``reference_date``.

Rounding: every currency component is summed from unrounded values and
rounded once, half-up, to 2 decimals. The bill total is the rounded sum of
those already-rounded components, so ``total_amount`` always equals the sum
a client computes from the breakdown it receives. The daily projection
divides the unrounded total.

CHANGELOG:
- 2026-10-18: Bound energy and demand inputs; project daily costs from the
  unrounded total (STORY-031)
- 2026-10-14: Validate max demand and power factor ranges (STORY-024)
- 2026-10-13: Accept legacy "-3phase" category names (STORY-023)
- 2026-10-12: Initial creation (STORY-021)

TODO:
- None
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from functools import partial

from gridbill.services.rounding import is_finite_number, round_currency, round_to

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class BillingError(ValueError):
    """Base class for billing request validation failures."""


class InvalidInput(BillingError):
    """A numeric field of the bill request is missing, negative or not finite."""


class InvalidCategory(BillingError):
    """The connection category is not one of the known tariff categories."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


class ConnectionCategory(str, Enum):
    """Tariff category of a metered connection."""

    DOMESTIC = "domestic"
    GENERAL_PURPOSE = "general-purpose"
    INDUSTRIAL = "industrial"


# Older clients send the category with the supply type appended.
_LEGACY_SUFFIX = "-3phase"

DEFAULT_POWER_FACTOR = 0.90
PROJECTION_DAYS = 30

# Inclusive upper bounds on request quantities. At these limits every
# rounded currency figure stays within Decimal's 28-digit precision.
MAX_TOTAL_ENERGY_KWH = 1e12
MAX_DEMAND_KVA = 1e12


@dataclass(frozen=True)
class BillRequest:
    """Normalized input for a single bill calculation.

    Attributes:
        total_energy: Energy consumed over the billing period in kWh.
        connection_category: Tariff category, as enum or wire string.
        max_demand_kva: Peak apparent power over the period in kVA.
        average_power_factor: Mean power factor over the period (0-1).
    """

    total_energy: float
    connection_category: ConnectionCategory | str
    max_demand_kva: float = 0.0
    average_power_factor: float = DEFAULT_POWER_FACTOR


@dataclass(frozen=True)
class SlabBreakdownEntry:
    """Energy billed within one tier (or the single flat-rate tier)."""

    label: str
    units_billed: float
    rate: float
    amount: float


@dataclass(frozen=True)
class DailyCost:
    """Projected cost for one calendar day."""

    date: date
    cost: float


@dataclass(frozen=True)
class Bill:
    """Structured bill returned by :func:`calculate_bill`.

    Attributes:
        total_amount: Sum of the rounded breakdown amounts, fixed charge,
            demand charge and power-factor adjustment, rounded to 2 dp.
        category: Category the bill was computed under.
        slab_breakdown: Energy charge per tier in ascending tier order.
        fixed_charge: Monthly fixed charge.
        demand_charge: Maximum-demand charge.
        power_factor_adjustment: Positive for a penalty, negative for an
            incentive, zero otherwise.
        max_demand_kva: Demand figure the bill was computed with (0 for
            domestic connections).
        power_factor: Power factor the bill was computed with.
        daily_costs: 30-day projection ending on the reference date.
    """

    total_amount: float
    category: ConnectionCategory
    slab_breakdown: list[SlabBreakdownEntry]
    fixed_charge: float
    demand_charge: float
    power_factor_adjustment: float
    max_demand_kva: float
    power_factor: float
    daily_costs: list[DailyCost] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Rate tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Slab:
    """One progressive tier: up to ``width`` kWh billed at ``rate``."""

    label: str
    width: float
    rate: float


DOMESTIC_SLABS: tuple[Slab, ...] = (
    Slab("0-30 kWh", 30.0, 7.85),
    Slab("31-60 kWh", 30.0, 15.00),
    Slab("61-90 kWh", 30.0, 20.00),
    Slab("91-120 kWh", 30.0, 30.00),
    Slab("121-180 kWh", 60.0, 42.00),
    Slab("181+ kWh", float("inf"), 50.00),
)

# (upper bound kWh inclusive, fixed charge); first match wins.
DOMESTIC_FIXED_CHARGE_STEPS: tuple[tuple[float, float], ...] = (
    (60.0, 150.00),
    (90.0, 350.00),
    (120.0, 600.00),
    (180.0, 750.00),
)
DOMESTIC_FIXED_CHARGE_MAX = 1000.00


@dataclass(frozen=True)
class FlatTariff:
    """Flat energy rate with demand charge and power-factor rules.

    Attributes:
        label: Breakdown label for the single energy entry.
        energy_rate: Currency units per kWh.
        fixed_charge: Monthly fixed charge.
        demand_rate: Currency units per kVA of maximum demand.
        penalty_below: Power factor under which a penalty applies.
        penalty_multiplier: Penalty fraction per unit of deficit
            (1.0 means 1% of the subtotal per 0.01 of deficit).
        incentive_above: Power factor above which an incentive applies,
            or None when the category has no incentive.
        incentive_multiplier: Incentive fraction per unit of surplus.
    """

    label: str
    energy_rate: float
    fixed_charge: float
    demand_rate: float
    penalty_below: float
    penalty_multiplier: float
    incentive_above: float | None = None
    incentive_multiplier: float = 0.0


GENERAL_PURPOSE_TARIFF = FlatTariff(
    label="General Purpose Rate",
    energy_rate=28.50,
    fixed_charge=500.00,
    demand_rate=450.00,
    penalty_below=0.85,
    penalty_multiplier=1.0,
)

INDUSTRIAL_TARIFF = FlatTariff(
    label="Industrial Rate",
    energy_rate=24.50,
    fixed_charge=1500.00,
    demand_rate=550.00,
    penalty_below=0.85,
    penalty_multiplier=1.5,
    incentive_above=0.90,
    incentive_multiplier=0.5,
)


# ---------------------------------------------------------------------------
# Calculators
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Charges:
    """Unrounded components produced by a category calculator."""

    breakdown: list[SlabBreakdownEntry]
    energy_charge: float
    fixed_charge: float
    demand_charge: float
    power_factor_adjustment: float
    max_demand_kva: float

    @property
    def total(self) -> float:
        """Unrounded sum of all components."""
        return (
            self.energy_charge
            + self.fixed_charge
            + self.demand_charge
            + self.power_factor_adjustment
        )


def bill_slabs(
    total_energy: float,
    slabs: tuple[Slab, ...],
) -> tuple[list[SlabBreakdownEntry], float]:
    """Fold energy across progressive slabs.

    Args:
        total_energy: Energy to bill in kWh.
        slabs: Tiers in ascending order; the last one should be unbounded.

    Returns:
        tuple: Breakdown entries (zero-unit tiers omitted, amounts rounded)
        and the unrounded energy charge.
    """
    remaining = total_energy
    breakdown: list[SlabBreakdownEntry] = []
    energy_charge = 0.0

    for slab in slabs:
        if remaining <= 0:
            break
        units = min(remaining, slab.width)
        amount = units * slab.rate
        energy_charge += amount
        breakdown.append(
            SlabBreakdownEntry(
                label=slab.label,
                units_billed=units,
                rate=slab.rate,
                amount=round_currency(amount),
            )
        )
        remaining -= units

    return breakdown, energy_charge


def domestic_fixed_charge(total_energy: float) -> float:
    """Return the domestic fixed charge for a monthly energy total."""
    for upper_kwh, charge in DOMESTIC_FIXED_CHARGE_STEPS:
        if total_energy <= upper_kwh:
            return charge
    return DOMESTIC_FIXED_CHARGE_MAX


def power_factor_adjustment(
    subtotal: float,
    power_factor: float,
    tariff: FlatTariff,
) -> float:
    """Compute the power-factor penalty (positive) or incentive (negative).

    Args:
        subtotal: Unrounded energy charge plus demand charge.
        power_factor: Average power factor for the period.
        tariff: Rate table holding the thresholds and multipliers.

    Returns:
        float: Unrounded adjustment; 0.0 when the power factor sits inside
        the neutral band (thresholds themselves are neutral).
    """
    if power_factor < tariff.penalty_below:
        deficit = tariff.penalty_below - power_factor
        return subtotal * deficit * tariff.penalty_multiplier
    if tariff.incentive_above is not None and power_factor > tariff.incentive_above:
        surplus = power_factor - tariff.incentive_above
        return -subtotal * surplus * tariff.incentive_multiplier
    return 0.0


def _calculate_domestic(request: BillRequest) -> _Charges:
    """Slab energy charge plus stepped fixed charge; no demand or PF terms."""
    breakdown, energy_charge = bill_slabs(request.total_energy, DOMESTIC_SLABS)
    return _Charges(
        breakdown=breakdown,
        energy_charge=energy_charge,
        fixed_charge=domestic_fixed_charge(request.total_energy),
        demand_charge=0.0,
        power_factor_adjustment=0.0,
        max_demand_kva=0.0,
    )


def _calculate_flat(request: BillRequest, tariff: FlatTariff) -> _Charges:
    """Flat energy rate, demand charge and power-factor adjustment."""
    energy_charge = request.total_energy * tariff.energy_rate
    demand_charge = request.max_demand_kva * tariff.demand_rate
    adjustment = power_factor_adjustment(
        energy_charge + demand_charge,
        request.average_power_factor,
        tariff,
    )
    breakdown = [
        SlabBreakdownEntry(
            label=tariff.label,
            units_billed=request.total_energy,
            rate=tariff.energy_rate,
            amount=round_currency(energy_charge),
        )
    ]
    return _Charges(
        breakdown=breakdown,
        energy_charge=energy_charge,
        fixed_charge=tariff.fixed_charge,
        demand_charge=demand_charge,
        power_factor_adjustment=adjustment,
        max_demand_kva=request.max_demand_kva,
    )


_CALCULATORS: dict[ConnectionCategory, Callable[[BillRequest], _Charges]] = {
    ConnectionCategory.DOMESTIC: _calculate_domestic,
    ConnectionCategory.GENERAL_PURPOSE: partial(
        _calculate_flat, tariff=GENERAL_PURPOSE_TARIFF
    ),
    ConnectionCategory.INDUSTRIAL: partial(_calculate_flat, tariff=INDUSTRIAL_TARIFF),
}


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------


def project_daily_costs(
    total_amount: float,
    reference_date: date,
    days: int = PROJECTION_DAYS,
) -> list[DailyCost]:
    """Spread a bill total evenly over the ``days`` ending on reference_date.

    Actual daily consumption is not consulted; every day gets the same cost.

    Args:
        total_amount: Unrounded bill total.
        reference_date: Last projected day.
        days: Number of days to project.

    Returns:
        list[DailyCost]: One entry per day, oldest first.
    """
    daily = round_currency(total_amount / days)
    first_day = reference_date - timedelta(days=days - 1)
    return [
        DailyCost(date=first_day + timedelta(days=offset), cost=daily)
        for offset in range(days)
    ]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_category(value: ConnectionCategory | str) -> ConnectionCategory:
    """Resolve a category from its enum or wire value.

    Raises:
        InvalidCategory: If the value names no known category.
    """
    if isinstance(value, ConnectionCategory):
        return value
    if isinstance(value, str):
        name = value.strip().lower()
        if name.endswith(_LEGACY_SUFFIX):
            name = name[: -len(_LEGACY_SUFFIX)]
        try:
            return ConnectionCategory(name)
        except ValueError:
            pass
    raise InvalidCategory(f"Invalid connection category: {value!r}")


def _validate(request: BillRequest) -> None:
    """Check the numeric fields of a request.

    Raises:
        InvalidInput: On the first field that is out of range.
    """
    energy = request.total_energy
    if not is_finite_number(energy) or not 0.0 <= energy <= MAX_TOTAL_ENERGY_KWH:
        raise InvalidInput(
            "total_energy must be a finite number within "
            f"[0, {MAX_TOTAL_ENERGY_KWH:g}] (got {energy!r})"
        )
    demand = request.max_demand_kva
    if not is_finite_number(demand) or not 0.0 <= demand <= MAX_DEMAND_KVA:
        raise InvalidInput(
            "max_demand_kva must be a finite number within "
            f"[0, {MAX_DEMAND_KVA:g}] (got {demand!r})"
        )
    pf = request.average_power_factor
    if not is_finite_number(pf) or not 0.0 <= pf <= 1.0:
        raise InvalidInput(f"average_power_factor must be within [0, 1] (got {pf!r})")


def calculate_bill(
    request: BillRequest,
    reference_date: date | None = None,
) -> Bill:
    """Compute a bill for one billing period.

    Args:
        request: Energy total, category, demand and power factor.
        reference_date: Last day of the daily-cost projection. Defaults to
            the current UTC date; pass it explicitly for reproducible output.

    Returns:
        Bill: The assembled bill.

    Raises:
        InvalidCategory: If the connection category is unknown.
        InvalidInput: If a numeric field is not a finite number inside its
            range: [0, MAX_TOTAL_ENERGY_KWH] for energy, [0, MAX_DEMAND_KVA]
            for demand and [0, 1] for the power factor.
    """
    category = parse_category(request.connection_category)
    _validate(request)

    charges = _CALCULATORS[category](request)

    fixed_charge = round_currency(charges.fixed_charge)
    demand_charge = round_currency(charges.demand_charge)
    adjustment = round_currency(charges.power_factor_adjustment)
    total_amount = round_currency(
        sum(entry.amount for entry in charges.breakdown)
        + fixed_charge
        + demand_charge
        + adjustment
    )

    if reference_date is None:
        reference_date = datetime.now(UTC).date()

    logger.debug(
        "Bill computed: category=%s total_energy=%.3f total_amount=%.2f",
        category.value,
        request.total_energy,
        total_amount,
    )

    return Bill(
        total_amount=total_amount,
        category=category,
        slab_breakdown=charges.breakdown,
        fixed_charge=fixed_charge,
        demand_charge=demand_charge,
        power_factor_adjustment=adjustment,
        max_demand_kva=round_to(charges.max_demand_kva, 2),
        power_factor=request.average_power_factor,
        daily_costs=project_daily_costs(charges.total, reference_date),
    )
