"""
Domain models — types shared by the engine, the steps and the CLI.

    from provisioner.core.models import Action, Receipt, RunContext, Step, StepResult
"""

from provisioner.core.models.action import Action, Receipt
from provisioner.core.models.config import (
    CATEGORIES,
    PackageSet,
    ProvisionConfig,
    RemoteInstaller,
    Share,
)
from provisioner.core.models.context import RunContext
from provisioner.core.models.step import Step, StepResult

__all__ = [
    # action.py
    "Action",
    "Receipt",
    # config.py
    "CATEGORIES",
    "PackageSet",
    "ProvisionConfig",
    "RemoteInstaller",
    "Share",
    # context.py
    "RunContext",
    # step.py
    "Step",
    "StepResult",
]
