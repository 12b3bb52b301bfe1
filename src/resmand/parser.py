"""Config text parsing.

A config file holds one ``<key> : <value>`` entry per line. Only the first
``:`` splits a line, both sides are trimmed, and lines without a ``:`` are
ignored. Comments, includes and conditionals are the preprocessor's job.
"""

from __future__ import annotations

import logging

from resmand._constants import KEY_EXTRA_CHARS
from resmand.exceptions import KeyRejected

_logger = logging.getLogger(__name__)


def is_valid_key(key: str) -> bool:
    """Return ``True`` when *key* is a non-empty run of ASCII alphanumerics, ``-``, ``.`` or ``_``."""
    if not key:
        return False
    return all((ch.isascii() and ch.isalnum()) or ch in KEY_EXTRA_CHARS for ch in key)


def split_entry(line: str) -> tuple[str, str] | None:
    """Split one line at its first ``:`` into a trimmed ``(key, value)`` pair."""
    key, sep, value = line.partition(":")
    if not sep:
        return None
    return key.strip(), value.strip()


def parse_config(text: str) -> dict[str, str]:
    """Parse preprocessed config text into a key/value mapping.

    Parsing is best-effort: a line with an invalid key is logged and
    skipped, the rest of the text is still parsed. When a key appears on
    several lines the last one wins.
    """
    entries: dict[str, str] = {}
    # Only "\n" (with an optional "\r") ends a line; other Unicode breaks stay in the value.
    for line_number, line in enumerate(text.split("\n"), start=1):
        pair = split_entry(line.removesuffix("\r"))
        if pair is None:
            continue
        key, value = pair
        if not is_valid_key(key):
            _logger.warning("%s", KeyRejected(key, line_number=line_number))
            continue
        entries[key] = value
    return entries
