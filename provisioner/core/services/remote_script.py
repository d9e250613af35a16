"""
Remote installer scripts — download, verify, execute.

Replaces ``curl ... | sh``: the script is downloaded to a temp file
(retried, the network being the flaky part), optionally checked against
a pinned SHA-256, run with bash, then removed.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from pathlib import Path

from provisioner.core.engine.errors import ExternalToolFailure
from provisioner.core.models.config import RemoteInstaller
from provisioner.core.services.tools import ToolRunner

logger = logging.getLogger(__name__)


def run_remote_script(
    runner: ToolRunner,
    installer: RemoteInstaller,
    as_user: str | None = None,
) -> None:
    """Download ``installer.url`` over HTTPS and run it with bash.

    Raises:
        ExternalToolFailure: download failed, checksum mismatch, or the
            script exited non-zero.
    """
    fd, tmp_path = tempfile.mkstemp(suffix=".sh", prefix="provision_script_")
    os.close(fd)
    script = Path(tmp_path)
    try:
        runner.run(
            ["curl", "-fsSL", "--proto", "=https", "--tlsv1.2", "-o", str(script), installer.url],
            retry=True,
        )

        if installer.sha256:
            expected = installer.sha256.removeprefix("sha256:").lower()
            actual = hashlib.sha256(script.read_bytes()).hexdigest()
            if actual != expected:
                raise ExternalToolFailure(
                    f"sha256 check of {installer.url}",
                    None,
                    f"expected {expected}, got {actual}; the script may have been tampered with",
                )
        else:
            logger.debug("No pinned sha256 for %s, running unverified", installer.url)

        # Readable by the target user when it runs as them
        script.chmod(0o755)
        runner.run(["bash", str(script), *installer.args], as_user=as_user)
    finally:
        script.unlink(missing_ok=True)
