"""
Config check use case — validate provision.yml and report issues.
"""

from __future__ import annotations

import os
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from provisioner.core.config.loader import ConfigError, find_config_file, load_config
from provisioner.core.models.config import ProvisionConfig


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config: ProvisionConfig | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        config = self.config
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "user": (config.user or None) if config else None,
            "hostname": config.hostname if config else None,
            "share_count": len(config.shares) if config else 0,
            "disabled_categories": (
                sorted(name for name, on in config.categories.items() if not on) if config else []
            ),
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate provisioning configuration and report issues.

    Args:
        config_path: Optional explicit path to provision.yml.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
    if config_path is None:
        result.warnings.append("No provision.yml found; built-in defaults apply.")
    result.config_path = config_path

    # Load and validate
    try:
        config = load_config(config_path)
        result.config = config
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    # Target user
    if config.user == "root":
        result.errors.append("'user' must be the desktop user, not root.")
    elif not config.user and not os.environ.get("SUDO_USER"):
        result.warnings.append(
            "No 'user' set and $SUDO_USER is empty; run through sudo or set 'user'."
        )

    # Shares
    for label, values in (
        ("share sources", [s.source for s in config.shares]),
        ("mount points", [s.mount_point for s in config.shares]),
    ):
        dupes = sorted(v for v, n in Counter(values).items() if n > 1)
        if dupes:
            result.errors.append(f"Duplicate {label}: {', '.join(dupes)}")

    for share in config.shares:
        if not Path(share.mount_point).is_absolute():
            result.errors.append(f"Mount point for {share.source} must be absolute: {share.mount_point}")

    if not Path(config.credentials_file).is_absolute():
        result.errors.append(f"credentials_file must be absolute: {config.credentials_file}")

    # Remote installers
    for name, installer in config.remote_installers.items():
        if not installer.url.startswith("https://"):
            result.errors.append(f"Installer '{name}' must use https: {installer.url}")
        elif not installer.sha256:
            result.warnings.append(f"Installer '{name}' has no sha256 pin; the script runs unverified.")

    # Toggles and package sets
    disabled = sorted(name for name, on in config.categories.items() if not on)
    if disabled:
        result.warnings.append(f"Disabled categories: {', '.join(disabled)}")

    for name, packages in sorted(config.packages.items()):
        if packages.empty:
            result.warnings.append(f"Package set '{name}' is empty; its step will do nothing.")

    result.valid = len(result.errors) == 0
    return result
