"""
Tests for frame routing onto the device state.

Tests verify:
- Fixed routes (AC input/output, ESS) update the single entity.
- Keyed routes create battery / inverter records on first sight.
- Foreign topics and unknown suffixes never mutate state.
- A malformed device instance drops the frame with a warning.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging

import pytest
from gx_edge.src.models import BatteryDC, DeviceState, PvInverter
from gx_edge.src.routing import (
    ROUTES,
    Route,
    dispatch,
    dispatch_frame,
    parse_device_id,
    resolve,
)

SERIAL = "028102353a50"


def _topic(suffix: str) -> str:
    return f"N/{SERIAL}/{suffix}"


class TestParseDeviceId:
    @pytest.mark.parametrize(("segment", "expected"), [("512", 512), ("0", 0), ("007", 7)])
    def test_numeric(self, segment: str, expected: int) -> None:
        assert parse_device_id(segment) == expected

    @pytest.mark.parametrize("segment", ["", "abc", "-1", "1.5", "١٢"])
    def test_malformed(self, segment: str) -> None:
        assert parse_device_id(segment) is None


class TestResolve:
    def test_fixed_route(self) -> None:
        match = resolve(["vebus", "275", "Ac", "ActiveIn", "L1", "V"])
        assert match is not None
        assert match.route.target == "ac_input"
        assert match.device_id is None
        assert match.remainder == ("L1", "V")

    def test_keyed_route(self) -> None:
        match = resolve(["battery", "512", "Dc", "0", "Power"])
        assert match is not None
        assert match.route.target == "batteries"
        assert match.device_id == 512
        assert match.remainder == ("Dc", "0", "Power")

    def test_other_vebus_instance_is_not_routed(self) -> None:
        assert resolve(["vebus", "276", "Ac", "ActiveIn", "L1", "V"]) is None

    def test_unknown_service(self) -> None:
        assert resolve(["system", "0", "Dc", "Battery", "Power"]) is None

    def test_keyed_route_without_instance(self) -> None:
        assert resolve(["battery"]) is None

    def test_malformed_instance_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="gx_edge.src.routing"):
            assert resolve(["battery", "abc", "Soc"]) is None
        assert "malformed device instance" in caplog.text

    def test_first_matching_prefix_wins(self) -> None:
        routes = (
            Route(("vebus", "275"), "ess"),
            Route(("vebus", "275", "Ac", "Out"), "ac_output"),
        )
        match = resolve(["vebus", "275", "Ac", "Out", "L1", "P"], routes)
        assert match is not None
        assert match.route.target == "ess"

    def test_routing_table_order(self) -> None:
        assert [route.target for route in ROUTES] == [
            "ac_input",
            "ac_output",
            "ess",
            "batteries",
            "inverters",
        ]


class TestDispatchFrame:
    def test_ac_input_voltage(self) -> None:
        state = DeviceState()
        assert dispatch_frame(state, _topic("vebus/275/Ac/ActiveIn/L1/V"), SERIAL, 230.5)
        assert state.ac_input.voltage == 230.5
        assert state.ac_output.voltage is None

    def test_ac_output_power(self) -> None:
        state = DeviceState()
        assert dispatch_frame(state, _topic("vebus/275/Ac/Out/L1/P"), SERIAL, 850.0)
        assert state.ac_output.power == 850.0

    def test_ess_setpoint(self) -> None:
        state = DeviceState()
        assert dispatch_frame(
            state, _topic("vebus/275/Hub4/L1/AcPowerSetpoint"), SERIAL, 150.0
        )
        assert state.ess.grid_setpoint == 150.0

    def test_battery_created_on_first_sight(self, caplog: pytest.LogCaptureFixture) -> None:
        state = DeviceState()
        with caplog.at_level(logging.INFO, logger="gx_edge.src.routing"):
            assert dispatch_frame(state, _topic("battery/512/Soc"), SERIAL, 87.0)

        assert state.batteries == {512: BatteryDC(soc=87.0)}
        assert "Discovered batteries instance 512" in caplog.text

    def test_inverter_created_on_first_sight(self) -> None:
        state = DeviceState()
        assert dispatch_frame(state, _topic("pvinverter/20/Ac/Power"), SERIAL, 1200.0)
        assert state.inverters == {20: PvInverter(power=1200.0)}

    def test_existing_record_is_updated_not_replaced(self) -> None:
        state = DeviceState()
        dispatch_frame(state, _topic("battery/512/Soc"), SERIAL, 87.0)
        record = state.batteries[512]

        dispatch_frame(state, _topic("battery/512/Dc/0/Power"), SERIAL, 120.0)

        assert state.batteries[512] is record
        assert record.soc == 87.0
        assert record.dc_power == 120.0

    def test_unknown_suffix_still_creates_record(self) -> None:
        state = DeviceState()
        assert not dispatch_frame(state, _topic("battery/513/ProductName"), SERIAL, None)
        assert state.batteries == {513: BatteryDC()}

    def test_decode_failure_creates_record_without_values(self) -> None:
        state = DeviceState()
        assert dispatch_frame(state, _topic("pvinverter/21/Ac/Power"), SERIAL, None)
        assert state.inverters == {21: PvInverter()}

    @pytest.mark.parametrize(
        "topic",
        [
            "N/otherserial/battery/512/Soc",
            f"R/{SERIAL}/keepalive",
            f"N/{SERIAL}/",
            f"N/{SERIAL}/system/0/Dc/Battery/Power",
            f"N/{SERIAL}/battery/abc/Soc",
            f"N/{SERIAL}/battery",
        ],
    )
    def test_dropped_frames_leave_state_untouched(self, topic: str) -> None:
        state = DeviceState()
        assert dispatch_frame(state, topic, SERIAL, 1.0) is False
        assert state == DeviceState()

    def test_replayed_frame_is_idempotent(self) -> None:
        once, twice = DeviceState(), DeviceState()
        topic = _topic("battery/512/Dc/0/Voltage")

        dispatch_frame(once, topic, SERIAL, 52.1)
        dispatch_frame(twice, topic, SERIAL, 52.1)
        dispatch_frame(twice, topic, SERIAL, 52.1)

        assert once == twice


class TestDispatch:
    def test_segments_form(self) -> None:
        state = DeviceState()
        assert dispatch(state, ["pvinverter", "22", "Ac", "Energy", "Forward"], 1234.5)
        assert state.inverters[22].total_energy == 1234.5
