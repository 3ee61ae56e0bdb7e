"""
POST /v1/bill endpoint for tariff bill calculation.

Accepts an energy total and connection category, runs the billing engine
and returns the bill with its slab breakdown and 30-day projection. Billing
validation errors (unknown category, negative or non-finite numbers) are
returned as 422.

CHANGELOG:
- 2026-10-16: Initial creation (STORY-025)

TODO:
- None
"""

import logging
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field

from gridbill.api.deps import CamelModel, get_meter_id
from gridbill.services.billing import (
    DEFAULT_POWER_FACTOR,
    Bill,
    BillingError,
    BillRequest,
    calculate_bill,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["billing"])


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class BillIn(CamelModel):
    """Bill calculation request.

    Attributes:
        total_energy: Energy consumed in the billing period (kWh).
        connection_category: Tariff category name.
        max_demand_kva: Peak apparent power (kVA); defaults to 0.
        average_power_factor: Mean power factor; defaults to 0.90.
    """

    total_energy: float
    connection_category: str
    max_demand_kva: float | None = Field(default=None, alias="maxDemandKVA")
    average_power_factor: float | None = None


class BreakdownOut(CamelModel):
    """One slab of the energy charge."""

    slab: str
    units: float
    rate: float
    amount: float


class DailyCostOut(CamelModel):
    """Projected cost for one day (ISO date)."""

    date: str
    cost: float


class BillOut(CamelModel):
    """Bill calculation response."""

    total_amount: float
    category: str
    breakdown: list[BreakdownOut]
    fixed_charges: float
    demand_charges: float
    power_factor_adjustment: float
    max_demand_kva: float = Field(alias="maxDemandKVA")
    power_factor: float
    daily_costs: list[DailyCostOut]

    @classmethod
    def from_bill(cls, bill: Bill) -> "BillOut":
        """Build the response from an engine Bill."""
        return cls(
            total_amount=bill.total_amount,
            category=bill.category.value,
            breakdown=[
                BreakdownOut(
                    slab=entry.label,
                    units=entry.units_billed,
                    rate=entry.rate,
                    amount=entry.amount,
                )
                for entry in bill.slab_breakdown
            ],
            fixed_charges=bill.fixed_charge,
            demand_charges=bill.demand_charge,
            power_factor_adjustment=bill.power_factor_adjustment,
            max_demand_kva=bill.max_demand_kva,
            power_factor=bill.power_factor,
            daily_costs=[
                DailyCostOut(date=day.date.isoformat(), cost=day.cost)
                for day in bill.daily_costs
            ],
        )


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------


@router.post("/bill", response_model=BillOut)
async def create_bill(
    payload: BillIn,
    meter_id: Annotated[str, Depends(get_meter_id)],
) -> BillOut:
    """Calculate a bill for the posted energy total.

    Args:
        payload: Energy total, category and optional demand/power factor.
        meter_id: Authenticated meter_id from bearer token.

    Returns:
        BillOut: The computed bill.

    Raises:
        HTTPException: 422 if the billing engine rejects the request.
    """
    request = BillRequest(
        total_energy=payload.total_energy,
        connection_category=payload.connection_category,
        max_demand_kva=payload.max_demand_kva or 0.0,
        average_power_factor=(
            DEFAULT_POWER_FACTOR
            if payload.average_power_factor is None
            else payload.average_power_factor
        ),
    )

    try:
        bill = calculate_bill(request, reference_date=datetime.now(UTC).date())
    except BillingError as exc:
        logger.warning("Rejected bill request from meter %s: %s", meter_id, exc)
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    logger.debug(
        "Bill for meter %s: category=%s total=%.2f",
        meter_id,
        bill.category.value,
        bill.total_amount,
    )
    return BillOut.from_bill(bill)
