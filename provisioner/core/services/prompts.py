"""
Interactive prompts — yes/no confirmations and hidden credential input.

Only steps that touch security-sensitive or destructive state prompt:
the CIFS credentials, the snapshot-directory wipe, and snapshotting a
non-standard btrfs layout. Prompts block with no timeout.
"""

from __future__ import annotations

import click

_YES = {"y", "yes"}


class Prompter:
    """Terminal prompts on stdin/stdout, via click.

    Ctrl-C or end of input at a prompt interrupts the whole run, the same
    as Ctrl-C anywhere else, rather than failing only the current step.
    """

    def confirm(self, prompt: str) -> bool:
        """Ask a yes/no question. Only ``y``/``yes`` (any case) count as yes."""
        answer = self._ask(f"{prompt} (y/n)", default="", show_default=False)
        return answer.strip().lower() in _YES

    def read_text(self, prompt: str) -> str:
        return self._ask(prompt).strip()

    def read_secret(self, prompt: str) -> str:
        """Read a value without echoing it to the terminal."""
        return self._ask(prompt, hide_input=True)

    def _ask(self, prompt: str, **kwargs) -> str:
        try:
            return click.prompt(prompt, **kwargs)
        except click.Abort:
            raise KeyboardInterrupt from None
