"""
Async Modbus TCP reader for the Victron GX device.

Secondary access path next to the MQTT feed: reads the holding registers
defined in registers.py over Modbus TCP and converts them to engineering
units. Two styles of use:

- ``read(name)`` and the ``get_*`` helpers read one register and raise
  :class:`~gx_edge.src.errors.ModbusReadError` on any failure.
- ``poll()`` reads every register group, applies exponential backoff after
  consecutive failures (capped at MAX_BACKOFF_S) and never raises.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging

from pymodbus.client import AsyncModbusTcpClient

from gx_edge.src.errors import ModbusReadError
from gx_edge.src.registers import (
    ALL_GROUPS,
    ALL_REGISTERS,
    REGISTER_GROUPS,
    RegisterDef,
    RegisterGroup,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BASE_BACKOFF_S: float = 1.0
"""Initial backoff delay in seconds after the first connection failure."""

MAX_BACKOFF_S: float = 60.0
"""Maximum backoff delay in seconds (cap for exponential growth)."""

MODBUS_TIMEOUT_S: float = 10.0
"""Timeout per Modbus TCP request in seconds."""


# ---------------------------------------------------------------------------
# Type conversion helpers
# ---------------------------------------------------------------------------


def _convert_s16(raw: int) -> int:
    """Interpret a raw 16-bit value as signed (two's complement)."""
    val = raw & 0xFFFF
    if val >= 0x8000:
        val -= 0x10000
    return val


def _convert_u32(hi: int, lo: int) -> int:
    """Assemble two U16 registers (high word first) into unsigned 32-bit."""
    return ((hi & 0xFFFF) << 16) | (lo & 0xFFFF)


def _convert_s32(hi: int, lo: int) -> int:
    """Assemble two U16 registers (high word first) into signed 32-bit."""
    val = _convert_u32(hi, lo)
    if val >= 0x80000000:
        val -= 0x100000000
    return val


def decode_register(reg: RegisterDef, words: list[int]) -> float:
    """Type-convert and scale the raw words of one register.

    Raises:
        ModbusReadError: If *words* has the wrong length for the type.
    """
    if len(words) != reg.word_count:
        raise ModbusReadError(
            f"Register '{reg.name}': expected {reg.word_count} words, "
            f"got {len(words)}"
        )
    if reg.reg_type == "U16":
        raw = words[0] & 0xFFFF
    elif reg.reg_type == "S16":
        raw = _convert_s16(words[0])
    elif reg.reg_type == "U32":
        raw = _convert_u32(words[0], words[1])
    else:
        raw = _convert_s32(words[0], words[1])
    return round(raw * reg.scale, 6)


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------


class GxModbusReader:
    """Modbus TCP reader for the GX device with exponential backoff on poll.

    Args:
        host: GX device IP address or hostname.
        port: Modbus TCP port (default 502).
        vebus_unit_id: Unit id of the VE.Bus inverter/charger service.
        system_unit_id: Unit id of the system service (default 100).
    """

    def __init__(
        self,
        *,
        host: str,
        port: int = 502,
        vebus_unit_id: int = 227,
        system_unit_id: int = 100,
    ) -> None:
        self._host = host
        self._port = port
        self._unit_ids = {"vebus": vebus_unit_id, "system": system_unit_id}
        self._consecutive_failures: int = 0

    def _client(self) -> AsyncModbusTcpClient:
        return AsyncModbusTcpClient(
            self._host,
            port=self._port,
            timeout=MODBUS_TIMEOUT_S,
        )

    # -- Single reads -------------------------------------------------------

    async def read(self, name: str) -> float:
        """Read one register by name and return its engineering value.

        Raises:
            ModbusReadError: On unknown name, connection failure, error PDU
                or malformed response.
        """
        reg = ALL_REGISTERS.get(name)
        if reg is None:
            raise ModbusReadError(f"Unknown register '{name}'")
        unit_id = self._unit_ids[REGISTER_GROUPS[name].unit]

        client = self._client()
        try:
            await _connect(client)
            response = await client.read_holding_registers(
                reg.address,
                count=reg.word_count,
                device_id=unit_id,
            )
            if response.isError():
                raise ModbusReadError(
                    f"Modbus error reading '{name}' "
                    f"(unit={unit_id}, address={reg.address})"
                )
            return decode_register(reg, response.registers)
        except ModbusReadError:
            raise
        except Exception as exc:
            raise ModbusReadError(
                f"Modbus read of '{name}' from {self._host}:{self._port} failed: {exc}"
            ) from exc
        finally:
            client.close()

    async def get_input_power(self) -> float:
        """AC input power in W."""
        return await self.read("ac_input_power")

    async def get_output_power(self) -> float:
        """AC output power in W."""
        return await self.read("ac_output_power")

    async def get_battery_power(self) -> float:
        """Battery power in W (positive = charging)."""
        return await self.read("battery_power")

    async def get_battery_soc(self) -> float:
        """Battery state of charge in percent."""
        return await self.read("battery_soc")

    # -- Full poll ----------------------------------------------------------

    async def poll(self) -> dict[str, float] | None:
        """Read every register group, with backoff after failures.

        Returns:
            A dict of ``{register_name: engineering_value}`` on success,
            or ``None`` on any error.
        """
        if self._consecutive_failures > 0:
            delay = min(
                BASE_BACKOFF_S * (2 ** (self._consecutive_failures - 1)),
                MAX_BACKOFF_S,
            )
            logger.warning(
                "Backoff: sleeping %.1fs before retry (consecutive failures: %d)",
                delay,
                self._consecutive_failures,
            )
            await asyncio.sleep(delay)

        client = self._client()
        try:
            result = await _do_poll(client, unit_ids=self._unit_ids)
        except Exception:
            logger.warning(
                "Unexpected error during Modbus poll to %s:%d",
                self._host,
                self._port,
                exc_info=True,
            )
            result = None
        finally:
            client.close()

        if result is not None:
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1
        return result


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


async def _connect(client: AsyncModbusTcpClient) -> None:
    ok = await client.connect()
    if not ok:
        raise ModbusReadError("Failed to connect to Modbus device")


async def _do_poll(
    client: AsyncModbusTcpClient,
    *,
    unit_ids: dict[str, int],
) -> dict[str, float] | None:
    """Read and decode every group on an already-created client.

    Returns:
        Complete value dict on success, or ``None`` on any error.
    """
    try:
        await _connect(client)
    except Exception:
        logger.warning("Failed to connect to Modbus device", exc_info=True)
        return None

    result: dict[str, float] = {}
    for group in ALL_GROUPS:
        unit_id = unit_ids[group.unit]
        response = await client.read_holding_registers(
            group.start_address,
            count=group.count,
            device_id=unit_id,
        )
        if response.isError():
            logger.warning(
                "Modbus error reading group '%s' (unit=%d, address=%d, count=%d)",
                group.group_name,
                unit_id,
                group.start_address,
                group.count,
            )
            return None
        _extract_register_values(group, response.registers, result)
    return result


def _extract_register_values(
    group: RegisterGroup,
    raw_words: list[int],
    out: dict[str, float],
) -> None:
    """Slice group-level raw words into decoded per-register values."""
    for reg in group.registers:
        offset = reg.address - group.start_address
        out[reg.name] = decode_register(
            reg, list(raw_words[offset : offset + reg.word_count])
        )
