"""
Configuration loader — reads provision.yml into ProvisionConfig.

The file is optional: with no file the built-in defaults describe the
stock install and the target user comes from ``$SUDO_USER``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from provisioner.core.models.config import ProvisionConfig
from provisioner.core.models.context import RunContext

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "provision.yml"


class ConfigError(Exception):
    """Raised when provisioning configuration is invalid or incomplete."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for provision.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to provision.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None) -> ProvisionConfig:
    """Load and validate provisioning configuration.

    Args:
        path: Explicit path to provision.yml. None means built-in defaults.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    if path is None:
        logger.info("No %s, using built-in defaults", CONFIG_FILE)
        return ProvisionConfig()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = ProvisionConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    logger.info("Loaded config %s (user=%s)", path, config.user or "$SUDO_USER")
    return config


def resolve_user(config: ProvisionConfig) -> str:
    """Target user: the config's, else whoever invoked sudo."""
    user = config.user or os.environ.get("SUDO_USER", "")
    if not user or user == "root":
        raise ConfigError(
            "Cannot determine the target user: set 'user' in provision.yml "
            "or run through sudo from the user's account."
        )
    return user


def build_context(
    config: ProvisionConfig,
    run_id: str,
    dry_run: bool = False,
) -> RunContext:
    """Resolve run-wide parameters once, at the start of a run."""
    user = resolve_user(config)
    return RunContext(
        run_id=run_id,
        user=user,
        home=config.resolved_home(user),
        hostname=config.hostname,
        categories=dict(config.categories),
        dry_run=dry_run,
    )


def log_file_path(config: ProvisionConfig, ctx: RunContext) -> Path:
    if config.log_file:
        return Path(config.log_file)
    return ctx.home / "Desktop" / "arch_setup.log"


def state_dir_path(config: ProvisionConfig, ctx: RunContext) -> Path:
    if config.state_dir:
        return Path(config.state_dir)
    return ctx.home / ".local" / "state" / "provisioner"
