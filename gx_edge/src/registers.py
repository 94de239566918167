"""
Victron GX Modbus TCP register map -- single source of truth.

Defines the handful of holding registers the GX client reads directly over
Modbus TCP (port 502, function code 0x03), their data types and scaling.
Victron's register list states a "scalefactor" the D-Bus value was
multiplied by; ``scale`` here is its inverse, so the engineering value is
always ``raw * scale``.

Registers are organised into contiguous groups, one per Modbus unit, so the
poller can issue one ``read_holding_registers`` call per group. The unit a
group lives on is named by ``unit`` ("vebus" or "system") and resolved to a
numeric unit id from configuration.

References:
    - Victron CCGX-Modbus-TCP-register-list

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RegisterDef:
    """Definition of a single Modbus register.

    Attributes:
        address: Modbus holding register address.
        name: Unique human-readable identifier used as dict key.
        reg_type: Data type -- one of ``"U16"``, ``"S16"``, ``"U32"``,
            ``"S32"``.
        unit: Engineering unit string (e.g. ``"W"``, ``"V"``, ``"%"``).
        scale: Multiplicative factor from raw integer to engineering value.
        description: Free-text description of the register.
        word_count: Number of 16-bit words, derived from *reg_type*.
    """

    address: int
    name: str
    reg_type: str
    unit: str
    scale: float = 1.0
    description: str = ""
    word_count: int = field(default=0, repr=False)

    def __post_init__(self) -> None:  # noqa: D105
        wc = _DEFAULT_WORD_COUNTS.get(self.reg_type)
        if wc is None:
            msg = f"Register '{self.name}': unsupported type '{self.reg_type}'"
            raise ValueError(msg)
        # frozen=True requires object.__setattr__
        object.__setattr__(self, "word_count", wc)


_DEFAULT_WORD_COUNTS: dict[str, int] = {
    "U16": 1,
    "S16": 1,
    "U32": 2,
    "S32": 2,
}


@dataclass(frozen=True, slots=True)
class RegisterGroup:
    """A contiguous range of registers on one Modbus unit.

    Attributes:
        group_name: Human-readable group identifier.
        unit: Which GX service the group belongs to (``"vebus"`` or
            ``"system"``).
        start_address: First register address in the batch.
        count: Total number of 16-bit words to read.
        registers: Ordered list of :class:`RegisterDef` within this range.
    """

    group_name: str
    unit: str
    start_address: int
    count: int
    registers: list[RegisterDef]


# ---------------------------------------------------------------------------
# VE.Bus AC group (addresses 3-23, com.victronenergy.vebus)
# ---------------------------------------------------------------------------

_VEBUS_AC_REGISTERS: list[RegisterDef] = [
    RegisterDef(
        address=3,
        name="ac_input_voltage",
        reg_type="U16",
        unit="V",
        scale=0.1,
        description="Input voltage phase 1",
    ),
    RegisterDef(
        address=9,
        name="ac_input_frequency",
        reg_type="S16",
        unit="Hz",
        scale=0.01,
        description="Input frequency 1",
    ),
    RegisterDef(
        address=12,
        name="ac_input_power",
        reg_type="S16",
        unit="W",
        scale=10,
        description="Input power 1",
    ),
    RegisterDef(
        address=15,
        name="ac_output_voltage",
        reg_type="U16",
        unit="V",
        scale=0.1,
        description="Output voltage phase 1",
    ),
    RegisterDef(
        address=21,
        name="ac_output_frequency",
        reg_type="S16",
        unit="Hz",
        scale=0.01,
        description="Output frequency",
    ),
    RegisterDef(
        address=23,
        name="ac_output_power",
        reg_type="S16",
        unit="W",
        scale=10,
        description="Output power 1",
    ),
]

VEBUS_AC_GROUP = RegisterGroup(
    group_name="vebus_ac",
    unit="vebus",
    start_address=3,
    count=21,  # 3..23 inclusive = 21 words
    registers=_VEBUS_AC_REGISTERS,
)

# ---------------------------------------------------------------------------
# System battery group (addresses 840-843, com.victronenergy.system)
# ---------------------------------------------------------------------------

_SYSTEM_BATTERY_REGISTERS: list[RegisterDef] = [
    RegisterDef(
        address=840,
        name="battery_voltage",
        reg_type="U16",
        unit="V",
        scale=0.1,
        description="Battery voltage (system)",
    ),
    RegisterDef(
        address=841,
        name="battery_current",
        reg_type="S16",
        unit="A",
        scale=0.1,
        description="Battery current (system)",
    ),
    RegisterDef(
        address=842,
        name="battery_power",
        reg_type="S16",
        unit="W",
        scale=1,
        description="Battery power (system), positive = charging",
    ),
    RegisterDef(
        address=843,
        name="battery_soc",
        reg_type="U16",
        unit="%",
        scale=1,
        description="Battery state of charge (system)",
    ),
]

SYSTEM_BATTERY_GROUP = RegisterGroup(
    group_name="system_battery",
    unit="system",
    start_address=840,
    count=4,  # 840..843 inclusive = 4 words
    registers=_SYSTEM_BATTERY_REGISTERS,
)

# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------

ALL_GROUPS: list[RegisterGroup] = [VEBUS_AC_GROUP, SYSTEM_BATTERY_GROUP]
"""Every group the poller reads, in read order."""

ALL_REGISTERS: dict[str, RegisterDef] = {
    reg.name: reg for group in ALL_GROUPS for reg in group.registers
}
"""Register name -> definition."""

REGISTER_GROUPS: dict[str, RegisterGroup] = {
    reg.name: group for group in ALL_GROUPS for reg in group.registers
}
"""Register name -> the group it belongs to."""
