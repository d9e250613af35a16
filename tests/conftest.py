"""
Shared test fixtures and configuration.

External tools are never run: the ``shell`` adapter is a MockAdapter
(every command succeeds with empty output unless configured), while the
real FilesystemAdapter edits files under ``tmp_path``.
"""

import getpass
from pathlib import Path
from types import SimpleNamespace

import pytest

from provisioner.adapters.mock import MockAdapter
from provisioner.adapters.registry import AdapterRegistry
from provisioner.adapters.shell.filesystem import FilesystemAdapter
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.models.context import RunContext
from provisioner.core.observability.run_log import RunLog
from provisioner.core.services import ownership
from provisioner.core.services.prompts import Prompter
from provisioner.core.services.tools import ToolRunner, Toolbox


class FakePrompter(Prompter):
    """Scripted answers; records every prompt shown."""

    def __init__(self, confirm: bool = True, text: str = "alice", secret: str = "s3cret"):
        self.confirm_answer = confirm
        self.text = text
        self.secret = secret
        self.prompts: list[str] = []

    def confirm(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        return self.confirm_answer

    def read_text(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.text

    def read_secret(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.secret


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def user() -> str:
    """The account running the tests; file ownership changes target it."""
    return getpass.getuser()


@pytest.fixture
def home(tmp_path: Path) -> Path:
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def shell() -> MockAdapter:
    return MockAdapter()


@pytest.fixture
def adapters(shell: MockAdapter) -> AdapterRegistry:
    registry = AdapterRegistry()
    registry.register(shell)
    registry.register(FilesystemAdapter())
    return registry


@pytest.fixture
def installed() -> set[str]:
    """Binaries the fake PATH lookup reports as present."""
    return set()


@pytest.fixture
def runner(adapters: AdapterRegistry, installed: set[str]) -> ToolRunner:
    return ToolRunner(
        adapters,
        run_id="test",
        sleep=lambda seconds: None,
        which=lambda binary: f"/usr/bin/{binary}" if binary in installed else None,
    )


@pytest.fixture
def prompter() -> FakePrompter:
    return FakePrompter()


@pytest.fixture
def echoed() -> list[str]:
    return []


@pytest.fixture
def tools(runner: ToolRunner, prompter: FakePrompter, echoed: list[str]) -> Toolbox:
    return Toolbox(runner=runner, prompter=prompter, echo=echoed.append)


@pytest.fixture
def config(tmp_path: Path, user: str, home: Path) -> ProvisionConfig:
    """Config whose persisted files all live under tmp_path."""
    etc = tmp_path / "etc"
    etc.mkdir()
    return ProvisionConfig(
        user=user,
        home=str(home),
        log_file=str(tmp_path / "arch_setup.log"),
        state_dir=str(tmp_path / "state"),
        pacman_conf=str(etc / "pacman.conf"),
        fstab=str(etc / "fstab"),
        credentials_file=str(etc / "cifs-credentials"),
        snapshot_dir=str(tmp_path / "snapshots"),
        aur_build_dir=str(tmp_path / "yay-install"),
        shares=[
            {"source": "//192.168.0.2/media", "mount_point": str(tmp_path / "mnt" / "media")},
        ],
    )


@pytest.fixture
def ctx(user: str, home: Path) -> RunContext:
    return RunContext(run_id="test", user=user, home=home)


@pytest.fixture
def run_log(tmp_path: Path) -> RunLog:
    return RunLog(tmp_path / "run.log", echo=None, clock=lambda: "2024-05-01T12:00:00+00:00")


@pytest.fixture
def chowns(monkeypatch) -> list[tuple[Path, int, int]]:
    """Record ownership changes instead of making them; every user is uid 1000."""
    calls = []
    monkeypatch.setattr(ownership.pwd, "getpwnam", lambda name: SimpleNamespace(pw_uid=1000, pw_gid=1000))
    monkeypatch.setattr(ownership.os, "chown", lambda path, uid, gid: calls.append((Path(path), uid, gid)))
    return calls
