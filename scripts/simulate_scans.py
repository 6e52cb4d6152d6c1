#!/usr/bin/env python3
"""Walk a small household through entry/exit scans against the in-memory store.

Prints who holds privilege after each scan and which devices the gate
switched off.  Useful for eyeballing the presence -> privilege ->
remediation pipeline without a real backend.

Usage::

    python scripts/simulate_scans.py --verbose
    python scripts/simulate_scans.py --panic
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from homegate import (  # noqa: E402
    Actor,
    AuthorizationError,
    DeviceCategory,
    DeviceStatus,
    HomeGateClient,
    HomeGateConfig,
    InMemoryDocumentStore,
    Role,
)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Simulate presence scans against an in-memory homegate store")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--panic", action="store_true", help="Trigger panic mode at the end of the run")
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> int:
    store = InMemoryDocumentStore()
    config = HomeGateConfig(watch_presence=False)
    async with HomeGateClient(store, config) as home:
        home.on_privilege_change(lambda change: print(f"  privilege: {change.previous} -> {change.current}"))

        living = await home.add_room("Living Room")
        lamp = await home.add_device(living.id, "Lamp", DeviceCategory.LIGHT)
        await home.add_device(living.id, "Front Door", DeviceCategory.DOOR_LOCK)
        owner = await home.add_member("Olivia", Role.OWNER)
        guest = await home.add_member("Gabe", Role.GUEST)

        home.stage_room_change(owner.id, living.id, "assign")
        await home.commit_assignments(owner.id)

        print(f"{owner.name} enters")
        await home.record_entry(owner.id)
        await home.set_device_status(lamp.id, DeviceStatus.ON, Actor(id=owner.id))
        print(f"{guest.name} enters")
        await home.record_entry(guest.id)

        print(f"{owner.name} leaves")
        await home.record_exit(owner.id)
        lamp_now = next(d for d in await home.inventory.devices() if d.id == lamp.id)
        print(f"  lamp is {lamp_now.status}")

        try:
            await home.set_device_status(lamp.id, DeviceStatus.ON, Actor(id=guest.id))
        except AuthorizationError as exc:
            print(f"  {guest.name} denied: {exc.reason}")

        if args.panic:
            print("Panic!")
            await home.activate_panic()
            for device in await home.inventory.devices():
                print(f"  {device.name}: {device.status}")

        print(f"{guest.name} leaves")
        await home.record_exit(guest.id)
        for entry in await home.scan_history():
            print(f"  {entry.timestamp.isoformat()} {entry.type} {entry.member_id}")
    return 0


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
