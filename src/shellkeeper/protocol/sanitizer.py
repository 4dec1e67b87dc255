"""Output sanitizer — turn raw terminal bytes into caller-facing text."""

from __future__ import annotations

import re

# CSI: ESC [ params intermediates final
_CSI_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]")
# OSC: ESC ] ... terminated by BEL or ST, with or without parameters
_OSC_RE = re.compile(r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")
# Character-set designation (ESC ( B) and keypad/cursor-save introducers
_CHARSET_RE = re.compile(r"\x1b[()*+][0-9A-Za-z]")
_ESC_RE = re.compile(r"\x1b[=><78c]")
# Mode toggles whose ESC was already consumed, e.g. "[?2004h"
_MODE_RE = re.compile(r"\[\?[0-9]+[hl]")

READY_PROMPT_RE = re.compile(r"\[READY\][$#] ?")
_PROMPT_ONLY_LINE_RE = re.compile(r"^[%❯~$>#][ \t]*$", re.MULTILINE)
_PROMPT_PREFIX_RE = re.compile(r"^(?:[❯$>#][ \t]+)+", re.MULTILINE)
_BLANK_RUN_RE = re.compile(r"\n{3,}")


def strip_escapes(text: str) -> str:
    """Strip terminal control sequences and normalize line endings.

    Leaves prompts and blank lines alone; used by the completion protocol
    before it filters lines, and as the first stage of ``clean_output``.
    """
    text = _CSI_RE.sub("", text)
    text = _OSC_RE.sub("", text)
    text = _CHARSET_RE.sub("", text)
    text = _ESC_RE.sub("", text)
    text = _MODE_RE.sub("", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return sanitize_binary_output(text)


def sanitize_binary_output(text: str) -> str:
    """Remove binary garbage from output.

    Keeps printable chars, tabs and newlines.  Strips everything else
    (C0/C1 controls including stray ESC and BEL, format chars).
    """
    cleaned = []
    for ch in text:
        cp = ord(ch)
        if ch in ("\t", "\n"):
            cleaned.append(ch)
        elif cp >= 32 and not (0x7F <= cp < 0xA0) and not (0xFFF9 <= cp < 0xFFFC):
            cleaned.append(ch)
    return "".join(cleaned)


def _clean_once(text: str) -> str:
    text = strip_escapes(text)
    text = READY_PROMPT_RE.sub("", text)
    text = _PROMPT_ONLY_LINE_RE.sub("", text)
    text = _PROMPT_PREFIX_RE.sub("", text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()


def clean_output(text: str) -> str:
    """Strip ANSI codes, prompt artifacts and excess blank lines.

    Applied until the text stops changing, which makes it idempotent even
    when removing one prompt prefix exposes another.
    """
    cleaned = _clean_once(text)
    while True:
        again = _clean_once(cleaned)
        if again == cleaned:
            return cleaned
        cleaned = again
