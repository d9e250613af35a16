"""
ProvisionConfig — the desired end state of the machine.

Loaded from provision.yml. Every field has a default, so an empty file
(or no file at all) describes the stock ArchFox install. The package
lists, shares and shell snippets are the data the step catalog turns
into steps.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

CATEGORIES = (
    "essentials",
    "browsers",
    "office",
    "coding",
    "media",
    "gaming",
    "filesharing",
    "systemtools",
    "customization",
)


class PackageSet(BaseModel):
    """Packages for one step, split by installer."""

    pacman: list[str] = Field(default_factory=list)
    aur: list[str] = Field(default_factory=list)
    flatpak: list[str] = Field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.pacman or self.aur or self.flatpak)


class Share(BaseModel):
    """A CIFS network share mounted through /etc/fstab."""

    source: str                     # e.g. //192.168.0.2/media
    mount_point: str                # e.g. /mnt/media
    options: str = "vers=3.0,nofail"

    @field_validator("source")
    @classmethod
    def _source_is_unc(cls, value: str) -> str:
        if not value.startswith("//"):
            raise ValueError(f"share source must look like //host/share, got {value!r}")
        return value.rstrip("/")


class RemoteInstaller(BaseModel):
    """An HTTPS installer script (rclone, rustup)."""

    url: str
    args: list[str] = Field(default_factory=list)
    sha256: str | None = None


def _default_packages() -> dict[str, PackageSet]:
    return {
        "essentials": PackageSet(
            pacman=[
                "amdgpu_top", "bluez-utils", "duf", "fastfetch", "flatpak", "btop",
                "htop", "rsync", "inxi", "fzf", "ncdu", "tmux", "git", "wget", "curl",
                "kitty", "bat", "make", "unzip", "unrar", "vim", "wl-clipboard",
                "gcc", "go", "tldr", "zsh",
            ],
            flatpak=[
                "net.nokyan.Resources", "im.riot.Riot", "org.telegram.desktop",
                "com.rustdesk.RustDesk", "com.github.unrud.VideoDownloader",
                "com.github.tchx84.Flatseal",
            ],
        ),
        "multimedia": PackageSet(
            pacman=[
                "ffmpeg", "yt-dlp", "vlc", "mpv", "mediainfo", "easyeffects", "flac",
                "lame", "libmpeg2", "wavpack", "x264", "x265", "gstreamer", "gst-libav",
                "gst-plugins-base", "gst-plugins-good", "gst-plugins-bad",
                "gst-plugins-ugly", "intel-media-driver", "libva-intel-driver",
                "libva-mesa-driver", "mesa-vdpau",
            ],
            flatpak=["tv.plex.PlexDesktop", "com.plexamp.Plexamp"],
        ),
        "virtualization": PackageSet(
            pacman=["qemu-full", "samba", "libvirt", "virt-manager", "dnsmasq"],
        ),
        "browsers": PackageSet(
            aur=["brave-bin"],
            flatpak=["io.gitlab.librewolf-community"],
        ),
        "office": PackageSet(
            pacman=["kate"],
            flatpak=[
                "org.gimp.GIMP", "org.onlyoffice.desktopeditors", "md.obsidian.Obsidian",
                "net.ankiweb.Anki",
            ],
        ),
        "gaming": PackageSet(
            pacman=[
                "rocm-core", "rocm-hip-libraries", "rocm-hip-runtime", "rocm-hip-sdk",
                "rocm-ml-libraries", "rocm-ml-sdk", "rocm-opencl-runtime",
                "rocm-opencl-sdk", "steam", "mangohud",
            ],
            flatpak=["net.lutris.Lutris", "com.heroicgameslauncher.hgl", "org.yuzu_emu.yuzu"],
        ),
        "neovim": PackageSet(pacman=["neovim", "ripgrep", "fd"]),
        "cifs": PackageSet(pacman=["smbclient", "cifs-utils"]),
    }


def _default_shares() -> list[Share]:
    return [
        Share(source="//192.168.0.2/media", mount_point="/mnt/media"),
        Share(source="//192.168.0.2/archives", mount_point="/mnt/archives"),
    ]


def _default_shell_blocks() -> dict[str, str]:
    return {
        "cargo-path": 'export PATH="$HOME/.cargo/bin:$PATH"',
        "aliases": "alias cat='bat --paging=never'\nalias vim='nvim'",
    }


def _default_remote_installers() -> dict[str, RemoteInstaller]:
    return {
        "rclone": RemoteInstaller(url="https://rclone.org/install.sh"),
        "rustup": RemoteInstaller(url="https://sh.rustup.rs", args=["-y"]),
    }


class ProvisionConfig(BaseModel):
    """Root configuration model — loaded from provision.yml."""

    user: str = ""
    home: str = ""
    hostname: str = "ArchFox"
    log_file: str = ""
    state_dir: str = ""

    categories: dict[str, bool] = Field(default_factory=lambda: dict.fromkeys(CATEGORIES, True))

    pacman_conf: str = "/etc/pacman.conf"
    parallel_downloads: int = Field(default=10, ge=1)
    fstab: str = "/etc/fstab"
    credentials_file: str = "/etc/cifs-credentials"
    snapshot_dir: str = "/.snapshots"
    shell_rc: str = ".zshrc"        # relative to home

    aur_helper_repo: str = "https://aur.archlinux.org/yay.git"
    aur_build_dir: str = "/tmp/yay-install"
    flathub_url: str = "https://flathub.org/repo/flathub.flatpakrepo"
    kickstart_repo: str = "https://github.com/nvim-lua/kickstart.nvim.git"

    packages: dict[str, PackageSet] = Field(default_factory=_default_packages)
    shares: list[Share] = Field(default_factory=_default_shares)
    shell_blocks: dict[str, str] = Field(default_factory=_default_shell_blocks)
    remote_installers: dict[str, RemoteInstaller] = Field(
        default_factory=_default_remote_installers
    )

    @field_validator("categories")
    @classmethod
    def _known_categories(cls, value: dict[str, bool]) -> dict[str, bool]:
        unknown = sorted(set(value) - set(CATEGORIES))
        if unknown:
            raise ValueError(f"unknown categories: {', '.join(unknown)}")
        # Categories left out of the file stay enabled
        return {**dict.fromkeys(CATEGORIES, True), **value}

    @field_validator("packages")
    @classmethod
    def _merge_packages(cls, value: dict[str, PackageSet]) -> dict[str, PackageSet]:
        # A file that lists one group keeps the built-in lists for the others
        return {**_default_packages(), **value}

    def package_set(self, name: str) -> PackageSet:
        """Package set by name; empty when the config drops it."""
        return self.packages.get(name, PackageSet())

    def resolved_home(self, user: str) -> Path:
        return Path(self.home) if self.home else Path("/home") / user
