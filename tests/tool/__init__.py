"""Test helpers for kube-inventory tools."""

import sys

from kube_inventory.command import Command, run

KUBE_INVENTORY_CMD = [sys.executable, "-m", "kube_inventory"]


async def run_command(args: list[str], env: dict[str, str] | None = None) -> str:
    return await run(Command(KUBE_INVENTORY_CMD + args, env=env))
