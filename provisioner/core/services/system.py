"""
System state checks and changes: systemd units, groups, hostname.
"""

from __future__ import annotations

from provisioner.core.services.tools import ToolRunner


def unit_enabled(runner: ToolRunner, unit: str) -> bool:
    return runner.succeeds(["systemctl", "is-enabled", "--quiet", unit])


def unit_active(runner: ToolRunner, unit: str) -> bool:
    return runner.succeeds(["systemctl", "is-active", "--quiet", unit])


def units_running(runner: ToolRunner, units: list[str]) -> bool:
    """Whether every unit is both enabled and active."""
    return all(unit_enabled(runner, u) and unit_active(runner, u) for u in units)


def enable_now(runner: ToolRunner, units: list[str]) -> None:
    """Enable and start units; ``enable --now`` is a no-op for running units."""
    runner.run(["systemctl", "enable", "--now", *units])


def user_groups(runner: ToolRunner, user: str) -> list[str]:
    receipt = runner.query(["id", "-nG", user])
    return receipt.output.split() if receipt.ok else []


def ensure_user_in_group(runner: ToolRunner, user: str, group: str) -> bool:
    """Add ``user`` to ``group`` unless already a member. Returns True if changed."""
    if group in user_groups(runner, user):
        return False
    runner.run(["usermod", "-aG", group, user])
    return True


def static_hostname(runner: ToolRunner) -> str:
    receipt = runner.query(["hostnamectl", "--static"])
    return receipt.output.strip() if receipt.ok else ""
