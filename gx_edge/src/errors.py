"""
Exceptions raised by the GX edge client.

Background loops catch and log these; only client construction and command
publication let them reach the caller.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""


class GxError(Exception):
    """Base exception for GX edge client operations."""


class PayloadError(GxError):
    """Raised when a frame payload cannot be decoded as UTF-8 text."""


class TransportError(GxError):
    """Raised by the transport event stream on connection or poll failures."""


class PublishError(GxError):
    """Raised when an outbound publish is rejected by the transport."""


class ModbusReadError(GxError):
    """Raised when a Modbus register read fails or returns an error PDU."""
