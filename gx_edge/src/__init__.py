"""
Edge client package for Victron GX telemetry.

Subscribes to the GX device's MQTT feed, folds every telemetry frame into an
in-memory device state (AC input/output, batteries, PV inverters, ESS), keeps
the feed alive with periodic keepalive publishes and issues ESS setpoint
commands. A secondary Modbus TCP path reads a few registers directly.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""
