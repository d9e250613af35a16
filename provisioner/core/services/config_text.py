"""
Idempotent text edits for persisted configuration files.

Pure functions over file contents. Each ``ensure_*``/``set_*`` returns
``(new_text, changed)``; applying one twice yields the same text as
applying it once. The filesystem adapter does the reading and writing.

Three shapes are supported:

- keyed lines (``/etc/fstab``): one line per key, the key being the
  first whitespace-separated field;
- named blocks (``~/.zshrc``): a body between begin/end marker comments;
- directives (``/etc/pacman.conf``): ``Key`` flags or ``Key = value``
  settings inside an ini-style section, possibly commented out.
"""

from __future__ import annotations

import re

BLOCK_BEGIN = "# >>> provisioner:{name} >>>"
BLOCK_END = "# <<< provisioner:{name} <<<"


# ── Keyed lines ─────────────────────────────────────────────────


def _first_field(line: str) -> str | None:
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    return stripped.split()[0]


def has_keyed_line(text: str, key: str) -> bool:
    """Whether an active (uncommented) line starts with ``key``."""
    return any(_first_field(line) == key for line in text.splitlines())


def ensure_keyed_line(text: str, key: str, line: str) -> tuple[str, bool]:
    """Append ``line`` unless an active line keyed by ``key`` exists.

    An existing entry is left as it is, even when its options differ:
    the user may have tuned it by hand.
    """
    if has_keyed_line(text, key):
        return text, False
    return _append(text, line), True


# ── Named blocks ────────────────────────────────────────────────


def _block_pattern(name: str) -> re.Pattern[str]:
    begin = re.escape(BLOCK_BEGIN.format(name=name))
    end = re.escape(BLOCK_END.format(name=name))
    return re.compile(rf"^{begin}\n(.*?)^{end}\n?", re.MULTILINE | re.DOTALL)


def render_block(name: str, body: str) -> str:
    return (
        f"{BLOCK_BEGIN.format(name=name)}\n"
        f"{body.rstrip()}\n"
        f"{BLOCK_END.format(name=name)}\n"
    )


def find_block(text: str, name: str) -> str | None:
    """Body of the named block, or None if the file has no such block."""
    match = _block_pattern(name).search(text)
    if match is None:
        return None
    return match.group(1).rstrip("\n")


def ensure_block(text: str, name: str, body: str) -> tuple[str, bool]:
    """Insert the named block, or rewrite it in place if its body changed."""
    current = find_block(text, name)
    if current == body.rstrip():
        return text, False

    rendered = render_block(name, body)
    if current is None:
        separator = "\n" if text.strip() else ""
        return _append(text, separator + rendered.rstrip("\n")), True

    return _block_pattern(name).sub(lambda _m: rendered, text, count=1), True


# ── Directives ──────────────────────────────────────────────────


def _directive_re(key: str) -> re.Pattern[str]:
    return re.compile(rf"^(?P<comment>#\s*)?{re.escape(key)}\b\s*(?:=\s*(?P<value>.*?))?\s*$")


def directive_value(text: str, key: str) -> str | None:
    """Active value of ``key``: the value string, ``""`` for a bare flag, None if unset."""
    pattern = _directive_re(key)
    for line in text.splitlines():
        match = pattern.match(line.strip())
        if match and not match.group("comment"):
            return match.group("value") or ""
    return None


def set_directive(
    text: str,
    key: str,
    value: str | None = None,
    section: str = "options",
) -> tuple[str, bool]:
    """Make ``key`` (or ``key = value``) active.

    Order of preference: leave a matching active line alone, rewrite an
    active line with another value, uncomment a commented-out line, or
    insert a new line right after the ``[section]`` header.
    """
    wanted = key if value is None else f"{key} = {value}"
    current = directive_value(text, key)
    if current is not None and (value is None or current == str(value)):
        return text, False

    pattern = _directive_re(key)
    lines = text.splitlines()

    for want_comment in (False, True):
        for idx, line in enumerate(lines):
            match = pattern.match(line.strip())
            if match and bool(match.group("comment")) == want_comment:
                lines[idx] = wanted
                return _join(lines, text), True

    header = f"[{section}]"
    for idx, line in enumerate(lines):
        if line.strip() == header:
            lines.insert(idx + 1, wanted)
            return _join(lines, text), True

    return _append(text, wanted), True


# ── Helpers ─────────────────────────────────────────────────────


def _append(text: str, line: str) -> str:
    if text and not text.endswith("\n"):
        text += "\n"
    return f"{text}{line}\n"


def _join(lines: list[str], original: str) -> str:
    joined = "\n".join(lines)
    return joined + "\n" if original.endswith("\n") or not original else joined
