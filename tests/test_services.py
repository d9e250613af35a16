"""
Tests for services — tool runner, packages, systemd, snapper, mounts, installers, prompts, ownership.
"""

import hashlib
import stat
from pathlib import Path

import click
import pytest

from provisioner.core.engine.errors import (
    CredentialFileError,
    ExternalToolFailure,
    PreconditionCheckError,
)
from provisioner.core.models.config import PackageSet, RemoteInstaller, Share
from provisioner.core.services import mounts, ownership, packages, snapshots, system
from provisioner.core.services.prompts import Prompter
from provisioner.core.services.remote_script import run_remote_script

MEDIA = Share(source="//192.168.0.2/media", mount_point="/mnt/media")


# ── Tool runner ──────────────────────────────────────────────────────


class TestToolRunner:
    def test_run_returns_receipt(self, runner, shell):
        receipt = runner.run(["hostnamectl", "set-hostname", "ArchFox"])
        assert receipt.ok
        assert shell.commands == [["hostnamectl", "set-hostname", "ArchFox"]]

    def test_action_ids_are_sequential(self, runner, shell):
        runner.run(["true"])
        runner.run(["true"])
        assert [c.action.id for c in shell.call_log] == ["test:0001", "test:0002"]

    def test_run_failure_raises(self, runner, shell):
        shell.set_result(["pacman", "-Syu", "--noconfirm"], return_code=1, output="error: failed to synchronize")
        with pytest.raises(ExternalToolFailure) as exc:
            runner.run(["pacman", "-Syu", "--noconfirm"])
        assert exc.value.return_code == 1
        assert exc.value.command == "pacman -Syu --noconfirm"
        assert "failed to synchronize" in str(exc.value)

    def test_retry_only_when_asked(self, runner, shell):
        shell.set_failure(["git", "clone"], prefix=True)
        with pytest.raises(ExternalToolFailure):
            runner.run(["git", "clone", "https://example.org/repo.git", "/tmp/x"])
        assert shell.call_count == 1

        shell.reset()
        shell.set_failure(["git", "clone"], prefix=True)
        with pytest.raises(ExternalToolFailure):
            runner.run(["git", "clone", "https://example.org/repo.git", "/tmp/x"], retry=True)
        assert shell.call_count == 3

    def test_as_user_wraps_with_su(self, runner, shell):
        runner.run(["makepkg", "-si", "--noconfirm"], as_user="alice", cwd="/tmp/yay install")
        assert shell.commands == [
            ["su", "-", "alice", "-c", "cd '/tmp/yay install' && makepkg -si --noconfirm"]
        ]
        assert "cwd" not in shell.call_log[0].action.params

    def test_cwd_without_user(self, runner, shell):
        runner.run(["ls"], cwd="/tmp")
        assert shell.call_log[0].action.params["cwd"] == "/tmp"

    def test_query_does_not_raise_on_exit_code(self, runner, shell):
        shell.set_result(["checkupdates"], return_code=2)
        receipt = runner.query(["checkupdates"])
        assert receipt.return_code == 2

    def test_query_missing_tool(self, runner, shell):
        shell.set_missing(["checkupdates"])
        with pytest.raises(PreconditionCheckError, match="checkupdates is not installed"):
            runner.query(["checkupdates"])

    def test_succeeds(self, runner, shell):
        shell.set_failure(["pacman", "-Q", "snapper"])
        assert runner.succeeds(["pacman", "-Q", "git"])
        assert not runner.succeeds(["pacman", "-Q", "snapper"])

    def test_which(self, runner, installed):
        installed.add("yay")
        assert runner.which("yay")
        assert not runner.which("snapper")

    def test_edit(self, runner, tmp_path: Path):
        receipt = runner.edit("mkdir", str(tmp_path / "mnt"))
        assert receipt.changed

    def test_edit_failure_raises(self, runner):
        with pytest.raises(ExternalToolFailure, match="absolute"):
            runner.edit("mkdir", "relative/path")


# ── Packages ─────────────────────────────────────────────────────────


class TestPackages:
    def test_missing_packages(self, runner, shell):
        shell.set_failure(["pacman", "-Q", "snapper"])
        assert packages.missing_packages(runner, ["git", "snapper"]) == ["snapper"]

    def test_install_only_missing(self, runner, shell):
        shell.set_failure(["pacman", "-Q", "vlc"])
        installed = packages.install_packages(runner, ["mpv", "vlc"])
        assert installed == ["vlc"]
        assert ["pacman", "-S", "--needed", "--noconfirm", "vlc"] in shell.commands

    def test_nothing_missing_installs_nothing(self, runner, shell):
        assert packages.install_packages(runner, ["git"]) == []
        assert not shell.ran("pacman", "-S")

    def test_aur_as_user_with_retry(self, runner, shell, user):
        shell.set_failure(["pacman", "-Q", "brave-bin"])
        packages.install_aur_packages(runner, user, ["brave-bin"])
        assert shell.commands[-1] == ["su", "-", user, "-c", "yay -S --needed --noconfirm brave-bin"]

    def test_flatpaks(self, runner, shell):
        shell.set_failure(["flatpak", "info", "org.gimp.GIMP"])
        packages.install_flatpaks(runner, ["org.gimp.GIMP", "md.obsidian.Obsidian"])
        assert shell.commands[-1] == [
            "flatpak", "install", "-y", "--noninteractive", "flathub", "org.gimp.GIMP",
        ]

    def test_package_set_satisfied(self, runner, shell):
        pset = PackageSet(pacman=["kate"], flatpak=["org.gimp.GIMP"])
        assert packages.package_set_satisfied(runner, pset)
        shell.set_failure(["flatpak", "info", "org.gimp.GIMP"])
        assert not packages.package_set_satisfied(runner, pset)

    def test_install_package_set_message(self, runner, shell, user):
        assert packages.install_package_set(runner, user, PackageSet(pacman=["kate"])) == "nothing to install"
        shell.set_failure(["pacman", "-Q", "kate"])
        assert packages.install_package_set(runner, user, PackageSet(pacman=["kate"])) == "installed 1: kate"


# ── System ───────────────────────────────────────────────────────────


class TestSystem:
    def test_units_running(self, runner, shell):
        assert system.units_running(runner, ["libvirtd"])
        shell.set_failure(["systemctl", "is-active", "--quiet", "libvirtd"])
        assert not system.units_running(runner, ["libvirtd"])

    def test_ensure_user_in_group(self, runner, shell):
        shell.set_result(["id", "-nG", "alice"], output="alice wheel")
        assert system.ensure_user_in_group(runner, "alice", "libvirt")
        assert ["usermod", "-aG", "libvirt", "alice"] in shell.commands

    def test_already_in_group(self, runner, shell):
        shell.set_result(["id", "-nG", "alice"], output="alice wheel libvirt")
        assert not system.ensure_user_in_group(runner, "alice", "libvirt")
        assert not shell.ran("usermod")

    def test_static_hostname(self, runner, shell):
        shell.set_result(["hostnamectl", "--static"], output="ArchFox\n")
        assert system.static_hostname(runner) == "ArchFox"


# ── Snapshots ────────────────────────────────────────────────────────


class TestSnapshots:
    def test_subvolume_paths(self, runner, shell):
        shell.set_result(
            ["btrfs", "subvolume", "list", "/"],
            output="ID 256 gen 9 top level 5 path @\nID 257 gen 9 top level 5 path @home\n"
                   "ID 258 gen 9 top level 5 path @log\n",
        )
        assert snapshots.subvolume_paths(runner) == ["@", "@home", "@log"]

    @pytest.mark.parametrize("path", ["@log", "log", "@var_log", "@var/log"])
    def test_is_subvolume_layouts(self, path):
        assert snapshots.is_subvolume([path], "log")

    def test_is_not_subvolume(self):
        assert not snapshots.is_subvolume(["@", "@home", "@cache"], "log")

    def test_configs_without_snapper(self, runner, shell):
        assert snapshots.snapper_configs(runner) == []
        assert shell.call_count == 0

    def test_configs(self, runner, shell, installed):
        installed.add("snapper")
        shell.set_result(
            ["snapper", "--csvout", "list-configs"],
            output="config,subvolume\nroot,/\nhome,/home\n",
        )
        assert snapshots.snapper_configs(runner) == ["root", "home"]


# ── Mounts ───────────────────────────────────────────────────────────


class TestMounts:
    def test_fstab_line(self):
        line = mounts.fstab_line(MEDIA, "/etc/cifs-credentials", "alice")
        assert line == (
            "//192.168.0.2/media /mnt/media cifs "
            "credentials=/etc/cifs-credentials,uid=alice,gid=alice,vers=3.0,nofail 0 0"
        )

    def test_ensure_fstab_entry_twice_yields_one_line(self, runner, tmp_path: Path):
        fstab = tmp_path / "fstab"
        fstab.write_text("UUID=1234 / btrfs rw,subvol=@ 0 0\n")
        assert mounts.ensure_fstab_entry(runner, str(fstab), MEDIA, "/etc/cifs-credentials", "alice")
        assert not mounts.ensure_fstab_entry(runner, str(fstab), MEDIA, "/etc/cifs-credentials", "alice")
        lines = [line for line in fstab.read_text().splitlines() if line.startswith("//192.168.0.2/media")]
        assert len(lines) == 1

    def test_shares_in_fstab(self):
        text = mounts.fstab_line(MEDIA, "/c", "alice") + "\n"
        assert mounts.shares_in_fstab(text, [MEDIA])
        other = Share(source="//192.168.0.2/archives", mount_point="/mnt/archives")
        assert not mounts.shares_in_fstab(text, [MEDIA, other])

    def test_write_credentials(self, runner, tmp_path: Path):
        path = tmp_path / "cifs-credentials"
        mounts.write_credentials(runner, str(path), "alice", "s3cret")
        assert path.read_text() == "username=alice\npassword=s3cret\n"
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_write_credentials_failure(self, runner, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(CredentialFileError, match="cannot write credentials file"):
            mounts.write_credentials(runner, str(blocker / "creds"), "alice", "s3cret")

    def test_mount_share(self, runner, shell):
        mounts.mount_share(runner, MEDIA, "/etc/cifs-credentials", "alice")
        command = shell.commands[-1]
        assert command[:5] == ["mount", "-t", "cifs", "//192.168.0.2/media", "/mnt/media"]
        assert command[6].startswith("credentials=/etc/cifs-credentials")


# ── Remote installers ────────────────────────────────────────────────


class TestRemoteScript:
    def test_download_then_run(self, runner, shell):
        run_remote_script(runner, RemoteInstaller(url="https://sh.rustup.rs", args=["-y"]), as_user="alice")
        curl, run = shell.commands
        assert curl[:5] == ["curl", "-fsSL", "--proto", "=https", "--tlsv1.2"]
        assert curl[-1] == "https://sh.rustup.rs"
        script = curl[curl.index("-o") + 1]
        assert run[:4] == ["su", "-", "alice", "-c"]
        assert run[4] == f"bash {script} -y"
        assert not Path(script).exists()

    def test_download_retried(self, runner, shell):
        shell.set_failure(["curl"], prefix=True)
        with pytest.raises(ExternalToolFailure):
            run_remote_script(runner, RemoteInstaller(url="https://rclone.org/install.sh"))
        assert shell.call_count == 3
        assert not shell.ran("bash")

    def test_checksum_match(self, runner, shell):
        # The mocked curl leaves the temp file empty
        empty_sha = hashlib.sha256(b"").hexdigest()
        run_remote_script(runner, RemoteInstaller(url="https://rclone.org/install.sh", sha256=empty_sha))
        assert shell.ran("bash")

    def test_checksum_mismatch(self, runner, shell):
        with pytest.raises(ExternalToolFailure, match="tampered"):
            run_remote_script(runner, RemoteInstaller(url="https://rclone.org/install.sh", sha256="00" * 32))
        assert not shell.ran("bash")


# ── Prompts ──────────────────────────────────────────────────────────


class TestPrompter:
    @pytest.mark.parametrize("answer,expected", [("y", True), ("YES", True), ("n", False), ("", False), ("yep", False)])
    def test_confirm(self, monkeypatch, answer, expected):
        monkeypatch.setattr(click, "prompt", lambda *args, **kwargs: answer)
        assert Prompter().confirm("Delete everything?") is expected

    def test_read_secret_hides_input(self, monkeypatch):
        seen = {}

        def fake_prompt(text, **kwargs):
            seen.update(kwargs)
            return "s3cret"

        monkeypatch.setattr(click, "prompt", fake_prompt)
        assert Prompter().read_secret("Password") == "s3cret"
        assert seen["hide_input"] is True

    def test_abort_becomes_interrupt(self, monkeypatch):
        def aborted(*args, **kwargs):
            raise click.Abort()

        monkeypatch.setattr(click, "prompt", aborted)
        with pytest.raises(KeyboardInterrupt):
            Prompter().read_text("Username")


# ── Ownership ────────────────────────────────────────────────────────


class TestOwnership:
    def test_make_dirs_chowns_only_what_it_creates(self, tmp_path: Path, chowns):
        target = tmp_path / ".local" / "state" / "provisioner"
        created = ownership.make_dirs(target, "alice")
        assert created == [tmp_path / ".local", tmp_path / ".local" / "state", target]
        assert [path for path, _, _ in chowns] == created
        assert target.is_dir()

    def test_make_dirs_existing(self, tmp_path: Path, chowns):
        assert ownership.make_dirs(tmp_path, "alice") == []
        assert chowns == []

    def test_make_dirs_without_owner(self, tmp_path: Path, chowns):
        ownership.make_dirs(tmp_path / "a" / "b")
        assert (tmp_path / "a" / "b").is_dir()
        assert chowns == []

    def test_make_dirs_over_a_file(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(NotADirectoryError):
            ownership.make_dirs(blocker)
