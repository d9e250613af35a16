"""archfox-provision — idempotent provisioning sequencer for Arch Linux."""

__version__ = "0.1.0"
