"""
One-shot ESS setpoint command.

Connects to the GX device with the same environment configuration as the
daemon, writes the grid setpoint, then watches the observed ESS setpoint for
a few seconds. The Multiplus ramps gradually, so the observed value usually
trails the commanded one.

Usage:
    python -m gx_edge.src.setpoint --value 130
    python -m gx_edge.src.setpoint --value -500 --observe 10

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import TYPE_CHECKING

from gx_edge.src.client import GxClient

if TYPE_CHECKING:
    from gx_edge.src.config import GxSettings

logger = logging.getLogger(__name__)


async def run_setpoint(
    *,
    settings: GxSettings,
    value: float,
    observe_s: float = 3.0,
) -> float | None:
    """Write the ESS grid setpoint and return the last observed setpoint.

    Raises:
        TransportError: If the GX broker cannot be reached.
        PublishError: If the command publish is refused.
    """
    client = await GxClient.connect(settings)
    try:
        await client.ess_set_setpoint(value)
        logger.info("Commanded ESS grid setpoint %s W", value)
        if observe_s > 0:
            await asyncio.sleep(observe_s)
        observed = client.get_ess().grid_setpoint
        logger.info("Observed ESS grid setpoint: %s W", observed)
        return observed
    finally:
        await client.aclose()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(
        description="Write the Victron ESS grid setpoint via the GX MQTT feed"
    )
    p.add_argument(
        "--value", type=float, required=True,
        help="Grid setpoint in W (positive imports, negative exports)"
    )
    p.add_argument(
        "--observe", type=float, default=3.0, dest="observe_s",
        help="Seconds to watch the observed setpoint afterwards (default 3)"
    )
    return p.parse_args(argv)


def main() -> None:
    """Synchronous entrypoint."""
    from gx_edge.src.config import GxSettings
    from gx_edge.src.main import configure_logging

    args = parse_args()
    settings = GxSettings()
    configure_logging(settings.log_level)
    asyncio.run(
        run_setpoint(settings=settings, value=args.value, observe_s=args.observe_s)
    )


if __name__ == "__main__":
    main()
