"""
Btrfs snapshot checks and snapper configuration.
"""

from __future__ import annotations

import csv
import io

from provisioner.core.services.tools import ToolRunner

SNAPPER_TIMERS = ["snapper-timeline.timer", "snapper-cleanup.timer"]


def root_fstype(runner: ToolRunner) -> str:
    receipt = runner.query(["findmnt", "-no", "FSTYPE", "/"])
    return receipt.output.strip() if receipt.ok else ""


def subvolume_paths(runner: ToolRunner) -> list[str]:
    """Paths reported by ``btrfs subvolume list /``."""
    receipt = runner.query(["btrfs", "subvolume", "list", "/"])
    if not receipt.ok:
        return []
    paths = []
    for line in receipt.output.splitlines():
        # ID 257 gen 10 top level 5 path @log
        _, sep, path = line.partition(" path ")
        if sep:
            paths.append(path.strip())
    return paths


def is_subvolume(paths: list[str], name: str) -> bool:
    """Whether /var/<name> has its own subvolume under a common naming scheme."""
    candidates = {name, f"@{name}", f"@var_{name}", f"var_{name}", f"@var/{name}", f"var/{name}"}
    return any(path in candidates for path in paths)


def snapper_configs(runner: ToolRunner) -> list[str]:
    """Names of existing snapper configs (empty when snapper is absent)."""
    if not runner.which("snapper"):
        return []
    receipt = runner.query(["snapper", "--csvout", "list-configs"])
    if not receipt.ok:
        return []
    rows = csv.DictReader(io.StringIO(receipt.output))
    return [row["config"] for row in rows if row.get("config")]


def create_config(runner: ToolRunner, name: str, subvolume: str) -> None:
    runner.run(["snapper", "-c", name, "create-config", subvolume])


def create_snapshot(runner: ToolRunner, config: str, description: str) -> None:
    runner.run(["snapper", "-c", config, "create", "-d", description])
