"""Provisioning steps and the registry that orders them."""

from provisioner.core.steps.catalog import build_registry
from provisioner.core.steps.registry import RegistryError, StepRegistry

__all__ = ["RegistryError", "StepRegistry", "build_registry"]
