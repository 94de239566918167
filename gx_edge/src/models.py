"""
Pydantic models for the GX device entities and the aggregate device state.

Every numeric field is optional: ``None`` means "not yet observed", never
zero. Each entity knows how to apply a telemetry frame addressed to it: the
topic segments left after routing are looked up in a fixed per-entity table
that names the field to update.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import ClassVar

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class FrameEntity(BaseModel):
    """Base for entities fed by telemetry frames.

    Subclasses declare ``FRAME_FIELDS``, mapping a tuple of trailing topic
    segments to the name of the field it updates.
    """

    FRAME_FIELDS: ClassVar[dict[tuple[str, ...], str]] = {}

    def apply_frame(self, segments: Sequence[str], value: float | None) -> bool:
        """Apply one frame to this entity.

        A ``None`` value keeps the previously observed value: a payload that
        failed to decode is not an update.

        Args:
            segments: Topic segments remaining after routing.
            value: The decoded numeric value, or ``None`` if unset.

        Returns:
            True if *segments* matched a known field, False otherwise.
        """
        field_name = self.FRAME_FIELDS.get(tuple(segments))
        if field_name is None:
            logger.debug(
                "Unhandled %s parts: %s, value: %s",
                type(self).__name__,
                list(segments),
                value,
            )
            return False
        if value is not None:
            setattr(self, field_name, value)
        return True


class AcSpec(FrameEntity):
    """AC specification of the input or output side (single phase, L1).

    Attributes:
        voltage: Line voltage in V.
        power: Active power in W.
        frequency: Line frequency in Hz.
    """

    FRAME_FIELDS: ClassVar[dict[tuple[str, ...], str]] = {
        ("L1", "V"): "voltage",
        ("L1", "P"): "power",
        ("L1", "F"): "frequency",
    }

    voltage: float | None = None
    power: float | None = None
    frequency: float | None = None


class BatteryDC(FrameEntity):
    """DC side of one battery monitor / BMS.

    Attributes:
        dc_power: Battery power in W (positive = charging).
        dc_current: Battery current in A.
        dc_voltage: Battery voltage in V.
        cell_min_voltage: Lowest cell voltage in V.
        cell_max_voltage: Highest cell voltage in V.
        temperature: Battery temperature in degrees Celsius.
        soc: State of charge in percent.
        soh: State of health in percent.
    """

    FRAME_FIELDS: ClassVar[dict[tuple[str, ...], str]] = {
        ("Dc", "0", "Power"): "dc_power",
        ("Dc", "0", "Current"): "dc_current",
        ("Dc", "0", "Voltage"): "dc_voltage",
        ("Dc", "0", "Temperature"): "temperature",
        ("System", "MinCellVoltage"): "cell_min_voltage",
        ("System", "MaxCellVoltage"): "cell_max_voltage",
        ("Soc",): "soc",
        ("Soh",): "soh",
    }

    dc_power: float | None = None
    dc_current: float | None = None
    dc_voltage: float | None = None
    cell_min_voltage: float | None = None
    cell_max_voltage: float | None = None
    temperature: float | None = None
    soc: float | None = None
    soh: float | None = None


class PvInverter(FrameEntity):
    """AC-coupled PV inverter.

    Attributes:
        power: Current AC output power in W.
        max_power: Rated maximum AC power in W.
        total_energy: Lifetime forward energy in kWh.
    """

    FRAME_FIELDS: ClassVar[dict[tuple[str, ...], str]] = {
        ("Ac", "Power"): "power",
        ("Ac", "MaxPower"): "max_power",
        ("Ac", "Energy", "Forward"): "total_energy",
    }

    power: float | None = None
    max_power: float | None = None
    total_energy: float | None = None


class Ess(FrameEntity):
    """Energy storage system control state (single phase, L1).

    Attributes:
        grid_setpoint: Grid setpoint in W. Positive imports from the grid,
            negative exports. The Multiplus ramps towards a commanded value
            gradually, so the observed setpoint lags the one written.
    """

    FRAME_FIELDS: ClassVar[dict[tuple[str, ...], str]] = {
        ("L1", "AcPowerSetpoint"): "grid_setpoint",
    }

    grid_setpoint: float | None = None


class DeviceState(BaseModel):
    """Aggregate of everything known about one GX device.

    Battery and inverter records are keyed by their D-Bus device instance
    and are never removed once created.
    """

    ac_input: AcSpec = Field(default_factory=AcSpec)
    ac_output: AcSpec = Field(default_factory=AcSpec)
    ess: Ess = Field(default_factory=Ess)
    batteries: dict[int, BatteryDC] = Field(default_factory=dict)
    inverters: dict[int, PvInverter] = Field(default_factory=dict)
