"""
Package installation — pacman, the AUR helper, and Flatpak.

Every installer first asks which packages are missing and only installs
those, so a re-run never re-installs (and never fails on) packages that
are already present.
"""

from __future__ import annotations

import logging

from provisioner.core.models.config import PackageSet
from provisioner.core.services.tools import ToolRunner

logger = logging.getLogger(__name__)

FLATHUB = "flathub"


def missing_packages(runner: ToolRunner, packages: list[str]) -> list[str]:
    """Packages (repo or AUR) not known to the local pacman database."""
    return [pkg for pkg in packages if not runner.succeeds(["pacman", "-Q", pkg])]


def missing_flatpaks(runner: ToolRunner, app_ids: list[str]) -> list[str]:
    """Flatpak application IDs that are not installed."""
    if not app_ids:
        return []
    return [app for app in app_ids if not runner.succeeds(["flatpak", "info", app])]


def install_packages(runner: ToolRunner, packages: list[str]) -> list[str]:
    """Install missing repo packages. Returns what was installed."""
    missing = missing_packages(runner, packages)
    if missing:
        logger.info("Installing %d packages with pacman", len(missing))
        runner.run(["pacman", "-S", "--needed", "--noconfirm", *missing])
    return missing


def install_aur_packages(runner: ToolRunner, user: str, packages: list[str]) -> list[str]:
    """Install missing AUR packages with yay, as the unprivileged user."""
    missing = missing_packages(runner, packages)
    if missing:
        logger.info("Installing %d AUR packages with yay", len(missing))
        runner.run(
            ["yay", "-S", "--needed", "--noconfirm", *missing],
            as_user=user,
            retry=True,
        )
    return missing


def install_flatpaks(runner: ToolRunner, app_ids: list[str], remote: str = FLATHUB) -> list[str]:
    """Install missing Flatpak apps from ``remote``."""
    missing = missing_flatpaks(runner, app_ids)
    if missing:
        logger.info("Installing %d flatpaks from %s", len(missing), remote)
        runner.run(
            ["flatpak", "install", "-y", "--noninteractive", remote, *missing],
            retry=True,
        )
    return missing


def package_set_satisfied(runner: ToolRunner, packages: PackageSet) -> bool:
    """Whether every package of the set is already installed."""
    return not (
        missing_packages(runner, packages.pacman)
        or missing_packages(runner, packages.aur)
        or missing_flatpaks(runner, packages.flatpak)
    )


def install_package_set(runner: ToolRunner, user: str, packages: PackageSet) -> str:
    """Install whatever is missing from the set; returns a log message."""
    installed = install_packages(runner, packages.pacman)
    installed += install_aur_packages(runner, user, packages.aur)
    installed += install_flatpaks(runner, packages.flatpak)
    if not installed:
        return "nothing to install"
    return f"installed {len(installed)}: {', '.join(installed)}"
