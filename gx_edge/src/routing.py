"""
Frame routing: map a telemetry topic onto the entity it updates.

The routing table is an ordered list of segment prefixes. The first prefix
matching the start of a topic's segments selects the target entity; keyed
routes (batteries, PV inverters) take the next segment as the numeric device
instance and create the record on first sight. Whatever segments remain are
handed to the entity's ``apply_frame``.

Routing misses are not errors: the frame is dropped and logged at debug
level. A non-numeric device instance is dropped with a warning instead of
being folded onto instance 0.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from gx_edge.src.codec import topic_segments
from gx_edge.src.models import BatteryDC, DeviceState, FrameEntity, PvInverter

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Routing table
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Route:
    """One routing table entry.

    Attributes:
        prefix: Leading topic segments selecting this route.
        target: Name of the :class:`DeviceState` attribute updated.
        factory: Record type for keyed routes; ``None`` for fixed entities.
    """

    prefix: tuple[str, ...]
    target: str
    factory: type[FrameEntity] | None = None

    @property
    def keyed(self) -> bool:
        return self.factory is not None


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of resolving a topic against the routing table.

    Attributes:
        route: The matching route.
        device_id: Device instance for keyed routes, else ``None``.
        remainder: Segments left for the entity's ``apply_frame``.
    """

    route: Route
    device_id: int | None
    remainder: tuple[str, ...]


ROUTES: tuple[Route, ...] = (
    Route(("vebus", "275", "Ac", "ActiveIn"), "ac_input"),
    Route(("vebus", "275", "Ac", "Out"), "ac_output"),
    Route(("vebus", "275", "Hub4"), "ess"),
    Route(("battery",), "batteries", BatteryDC),
    Route(("pvinverter",), "inverters", PvInverter),
)
"""Ordered routing table; the first matching prefix wins."""


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def parse_device_id(segment: str) -> int | None:
    """Parse a device instance segment, or return ``None`` if not numeric."""
    if not segment.isascii() or not segment.isdigit():
        return None
    return int(segment)


def resolve(
    segments: Sequence[str],
    routes: Sequence[Route] = ROUTES,
) -> RouteMatch | None:
    """Find the route for *segments*.

    Pure function: it never touches device state.

    Returns:
        The :class:`RouteMatch`, or ``None`` when no route applies or a keyed
        route carries a malformed device instance.
    """
    for route in routes:
        size = len(route.prefix)
        if tuple(segments[:size]) != route.prefix:
            continue

        rest = tuple(segments[size:])
        if not route.keyed:
            return RouteMatch(route=route, device_id=None, remainder=rest)

        if not rest:
            logger.debug("Topic %s carries no device instance", "/".join(segments))
            return None
        device_id = parse_device_id(rest[0])
        if device_id is None:
            logger.warning(
                "Dropping %s frame with malformed device instance %r",
                route.target,
                rest[0],
            )
            return None
        return RouteMatch(route=route, device_id=device_id, remainder=rest[1:])

    logger.debug("No route for topic suffix %s", "/".join(segments))
    return None


def _target_entity(state: DeviceState, match: RouteMatch) -> FrameEntity:
    """Return the entity *match* addresses, creating keyed records as needed."""
    route = match.route
    if route.factory is None:
        return getattr(state, route.target)

    records: dict[int, FrameEntity] = getattr(state, route.target)
    entity = records.get(match.device_id)  # type: ignore[arg-type]
    if entity is None:
        entity = route.factory()
        records[match.device_id] = entity  # type: ignore[index]
        logger.info("Discovered %s instance %d", route.target, match.device_id)
    return entity


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def dispatch(
    state: DeviceState,
    segments: Sequence[str],
    value: float | None,
) -> bool:
    """Apply one frame, given as topic segments, to *state*.

    The caller must hold the state store's write lock.

    Returns:
        True if a known entity field matched, False if the frame was dropped.
    """
    match = resolve(segments)
    if match is None:
        return False
    entity = _target_entity(state, match)
    return entity.apply_frame(match.remainder, value)


def dispatch_frame(
    state: DeviceState,
    topic: str,
    serial: str,
    value: float | None,
) -> bool:
    """Apply one frame, given as a full topic, to *state*.

    Topics outside ``N/<serial>/`` never mutate *state*.
    """
    segments = topic_segments(topic, serial)
    if segments is None:
        logger.debug("Ignoring topic outside telemetry feed: %s", topic)
        return False
    return dispatch(state, segments, value)
