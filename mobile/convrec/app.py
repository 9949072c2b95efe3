"""Headless entrypoint: record for a while, then drain uploads."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from .controller import RecorderController
from .errors import DeviceError


async def run(base_dir: Path, duration: float, server_url: str | None) -> int:
    controller = RecorderController(base_dir)
    if server_url:
        controller.update_settings(server_url=server_url)
    await controller.launch()
    try:
        await controller.start_recording()
    except DeviceError as exc:
        controller.logger.error(f"Cannot start recording: {exc}")
        await controller.shutdown()
        return 1
    try:
        await asyncio.sleep(duration)
    finally:
        await controller.shutdown()
    status = controller.status()
    controller.logger.add(f"Done: {status['segments']}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Record conversations in segments and upload them.")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path.home() / ".convrec",
        help="Directory for settings, segment files and state (default: ~/.convrec).",
    )
    parser.add_argument("--duration", type=float, default=60.0, help="Seconds to record (default: 60).")
    parser.add_argument("--server", default=None, help="Backend base URL, saved to settings.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    raise SystemExit(asyncio.run(run(args.data_dir, args.duration, args.server)))


if __name__ == "__main__":
    main()
