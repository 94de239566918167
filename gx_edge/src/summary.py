"""
Read-only aggregates over the dynamic battery and PV inverter sets.

Summaries are recomputed from the entity records on every call and never
cached. Unset fields are skipped; an aggregate with no contributing entity is
``None`` rather than zero.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel

from gx_edge.src.models import BatteryDC, PvInverter


def _present(values: Iterable[float | None]) -> list[float]:
    return [v for v in values if v is not None]


def total(values: Iterable[float | None]) -> float | None:
    """Sum the set values, or ``None`` if none is set."""
    present = _present(values)
    if not present:
        return None
    return sum(present)


def average(values: Iterable[float | None]) -> float | None:
    """Mean of the set values, or ``None`` if none is set."""
    present = _present(values)
    if not present:
        return None
    return sum(present) / len(present)


def minimum(values: Iterable[float | None]) -> float | None:
    present = _present(values)
    return min(present) if present else None


def maximum(values: Iterable[float | None]) -> float | None:
    present = _present(values)
    return max(present) if present else None


class BatterySummary(BaseModel):
    """Aggregate view over every known battery.

    Attributes:
        total_power: Sum of battery DC power in W.
        avg_voltage: Mean battery DC voltage in V.
        avg_temperature: Mean battery temperature in degrees Celsius.
        avg_soc: Mean state of charge in percent.
        min_cell_voltage: Lowest cell voltage across all batteries in V.
        max_cell_voltage: Highest cell voltage across all batteries in V.
    """

    total_power: float | None = None
    avg_voltage: float | None = None
    avg_temperature: float | None = None
    avg_soc: float | None = None
    min_cell_voltage: float | None = None
    max_cell_voltage: float | None = None

    @classmethod
    def from_batteries(cls, batteries: Iterable[BatteryDC]) -> BatterySummary:
        batteries = list(batteries)
        return cls(
            total_power=total(b.dc_power for b in batteries),
            avg_voltage=average(b.dc_voltage for b in batteries),
            avg_temperature=average(b.temperature for b in batteries),
            avg_soc=average(b.soc for b in batteries),
            min_cell_voltage=minimum(b.cell_min_voltage for b in batteries),
            max_cell_voltage=maximum(b.cell_max_voltage for b in batteries),
        )


class PvInverterSummary(BaseModel):
    """Aggregate view over every known PV inverter.

    Attributes:
        total_power: Sum of current AC power in W.
        total_max_power: Sum of rated maximum power in W.
        total_energy: Sum of lifetime forward energy in kWh.
    """

    total_power: float | None = None
    total_max_power: float | None = None
    total_energy: float | None = None

    @classmethod
    def from_inverters(cls, inverters: Iterable[PvInverter]) -> PvInverterSummary:
        inverters = list(inverters)
        return cls(
            total_power=total(i.power for i in inverters),
            total_max_power=total(i.max_power for i in inverters),
            total_energy=total(i.total_energy for i in inverters),
        )
