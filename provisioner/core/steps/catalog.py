"""
Step catalog — the provisioning steps, in the order they run.

The first two steps are fatal: every later install goes through yay or
Flathub. The rest run whatever happened before them; each skips itself
when its effect is already in place.
"""

from __future__ import annotations

from provisioner.core.models.config import ProvisionConfig
from provisioner.core.services.tools import Toolbox
from provisioner.core.steps import apps, bootstrap, finish, storage
from provisioner.core.steps.registry import StepRegistry


def build_registry(config: ProvisionConfig, tools: Toolbox) -> StepRegistry:
    """Register every step for ``config``. The returned registry is frozen."""
    registry = StepRegistry()
    register = registry.register

    register(bootstrap.aur_helper_step(config, tools))
    register(bootstrap.flatpak_step(config, tools))
    register(storage.snapshots_step(config, tools))
    register(bootstrap.system_upgrade_step(config, tools))
    register(bootstrap.hostname_step(config, tools))
    register(bootstrap.pacman_config_step(config, tools))
    register(bootstrap.firmware_step(config, tools))

    register(apps.kickstart_nvim_step(config, tools))
    register(storage.cifs_mounts_step(config, tools))
    register(apps.package_step(
        config, tools, "multimedia",
        "Codecs, players and hardware video acceleration", category="media",
    ))
    register(apps.virtualization_step(config, tools))
    register(apps.package_step(
        config, tools, "essentials",
        "Everyday command-line tools and desktop apps", category="essentials",
    ))
    register(apps.rclone_step(config, tools))
    register(apps.rust_toolchain_step(config, tools))
    register(apps.package_step(
        config, tools, "browsers", "Brave and LibreWolf", category="browsers",
    ))
    register(apps.package_step(
        config, tools, "office", "Office suite, notes and image editing", category="office",
    ))
    register(apps.package_step(
        config, tools, "gaming", "Steam, ROCm and game launchers", category="gaming",
    ))

    register(finish.shell_config_step(config, tools))
    register(finish.cleanup_step(config, tools))
    register(finish.summary_step(config, tools))

    return registry.freeze()
