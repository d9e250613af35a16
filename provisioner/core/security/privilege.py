"""
Privilege gate — provisioning only runs as root.

Checked once, before the first step. Nothing is logged to the run log
on failure: no step has started.
"""

from __future__ import annotations

import os
from typing import Callable

from provisioner.core.engine.errors import PrivilegeError


def check_privilege(geteuid: Callable[[], int] = os.geteuid) -> None:
    """Raise PrivilegeError unless the effective uid is 0."""
    euid = geteuid()
    if euid != 0:
        raise PrivilegeError(f"This script must be run as root (sudo); effective uid is {euid}")
