"""
SQLAlchemy ORM models for the meter telemetry store.

Two TimescaleDB hypertables hold three-phase meter readings:

- ``three_phase_energy``: one row per phase per reading, composite primary
  key (meter_id, phase, ts).
- ``three_phase_total``: one aggregate row per reading, composite primary
  key (meter_id, ts).

Rows are written by the ingestion service; this package only reads them.

CHANGELOG:
- 2026-10-16: Replace inverter sample model with three-phase meter tables (STORY-027)

TODO:
- None
"""

import datetime

from sqlalchemy import DateTime, Double, SmallInteger, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all meter ORM models."""

    pass


class PhaseReading(Base):
    """Per-phase reading from a three-phase energy meter.

    Attributes:
        meter_id: Identifier of the meter.
        phase: Phase number (1, 2 or 3).
        ts: Measurement timestamp in UTC.
        voltage: Phase voltage in volts.
        current: Phase current in amperes.
        power: Phase real power in watts.
        energy_wh: Energy delivered on this phase since the previous reading.
        power_factor: Phase power factor (0-1).
    """

    __tablename__ = "three_phase_energy"

    meter_id: Mapped[str] = mapped_column(Text, primary_key=True, nullable=False)
    phase: Mapped[int] = mapped_column(SmallInteger, primary_key=True, nullable=False)
    ts: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        primary_key=True,
        nullable=False,
    )
    voltage: Mapped[float] = mapped_column(Double, nullable=False)
    current: Mapped[float] = mapped_column(Double, nullable=False)
    power: Mapped[float] = mapped_column(Double, nullable=False)
    energy_wh: Mapped[float] = mapped_column(Double, nullable=False)
    power_factor: Mapped[float | None] = mapped_column(Double, nullable=True)

    def __repr__(self) -> str:
        """Return string representation of the PhaseReading."""
        return (
            f"PhaseReading(meter_id={self.meter_id!r}, phase={self.phase!r}, "
            f"ts={self.ts!r}, power={self.power!r})"
        )


class MeterTotal(Base):
    """Aggregate reading across all phases of a meter.

    Attributes:
        meter_id: Identifier of the meter.
        ts: Measurement timestamp in UTC.
        total_energy_wh: Energy across all phases since the previous reading.
        avg_voltage: Mean of the phase voltages.
        total_current: Sum of the phase currents.
        total_power: Sum of the phase real powers in watts.
    """

    __tablename__ = "three_phase_total"

    meter_id: Mapped[str] = mapped_column(Text, primary_key=True, nullable=False)
    ts: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        primary_key=True,
        nullable=False,
    )
    total_energy_wh: Mapped[float] = mapped_column(Double, nullable=False)
    avg_voltage: Mapped[float] = mapped_column(Double, nullable=False)
    total_current: Mapped[float] = mapped_column(Double, nullable=False)
    total_power: Mapped[float] = mapped_column(Double, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of the MeterTotal."""
        return (
            f"MeterTotal(meter_id={self.meter_id!r}, ts={self.ts!r}, "
            f"total_power={self.total_power!r})"
        )
