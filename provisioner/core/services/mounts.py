"""
CIFS network shares — credentials file, fstab entries, mounting.

The fstab is keyed by share path: one line per share, appended only
when no active line for that share exists.
"""

from __future__ import annotations

import logging

from provisioner.core.engine.errors import CredentialFileError, ExternalToolFailure
from provisioner.core.models.config import Share
from provisioner.core.services import config_text
from provisioner.core.services.tools import ToolRunner

logger = logging.getLogger(__name__)


def mount_options(share: Share, credentials_file: str, user: str) -> str:
    return f"credentials={credentials_file},uid={user},gid={user},{share.options}"


def fstab_line(share: Share, credentials_file: str, user: str) -> str:
    options = mount_options(share, credentials_file, user)
    return f"{share.source} {share.mount_point} cifs {options} 0 0"


def shares_in_fstab(fstab_text: str, shares: list[Share]) -> bool:
    return all(config_text.has_keyed_line(fstab_text, s.source) for s in shares)


def ensure_fstab_entry(
    runner: ToolRunner,
    fstab: str,
    share: Share,
    credentials_file: str,
    user: str,
) -> bool:
    """Add the share's fstab line if missing. Returns True if the file changed."""
    receipt = runner.edit(
        "ensure_line",
        fstab,
        key=share.source,
        line=fstab_line(share, credentials_file, user),
    )
    return receipt.changed


def write_credentials(runner: ToolRunner, path: str, username: str, password: str) -> None:
    """Write the CIFS credentials file with mode 0600.

    Raises:
        CredentialFileError: the file could not be written.
    """
    content = f"username={username}\npassword={password}\n"
    try:
        runner.edit("write_secret", path, content=content)
    except ExternalToolFailure as e:
        raise CredentialFileError(f"cannot write credentials file {path}: {e.output or e}") from e


def is_mounted(runner: ToolRunner, mount_point: str) -> bool:
    return runner.succeeds(["findmnt", "-rn", mount_point])


def mount_share(runner: ToolRunner, share: Share, credentials_file: str, user: str) -> None:
    runner.run(
        [
            "mount", "-t", "cifs", share.source, share.mount_point,
            "-o", mount_options(share, credentials_file, user),
        ]
    )
