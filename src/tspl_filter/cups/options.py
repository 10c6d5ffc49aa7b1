"""
CUPS job option string parser.

The fifth filter argument carries the job options as a single string in
the syntax accepted by ``lp -o``::

    Darkness=12 zeMediaTracking=BLine job-name='My label' collate nofitplot

Rules:
    - Tokens are separated by whitespace; a stray comma between tokens is
      skipped.
    - ``name=value``, with optional whitespace around ``=``; the value runs
      to the next whitespace and may contain single/double quoted parts,
      backslash escapes and ``{...}`` collections (kept verbatim, braces
      included).
    - A bare ``name`` means ``name=true``; a bare ``noname`` means
      ``name=false``.
    - Repeated names (compared case-insensitively) replace the earlier
      value.

Malformed strings produce an empty result instead of an exception: the
PPD still supplies defaults, so the job can go on.
"""

from __future__ import annotations

import logging
from typing import Dict, Final, Optional

__all__ = ["parse_options"]

logger: Final = logging.getLogger(__name__)

_SPACES: Final[str] = " \t\n\r\f\v"
_NAME_STOP: Final[str] = _SPACES + "="


class _MalformedOptions(ValueError):
    pass


def parse_options(text: Optional[str]) -> Dict[str, str]:
    """
    Parse a CUPS option string into an ordered ``name -> value`` mapping.

    Args:
        text: The raw option argument. ``None`` and empty strings give an
              empty mapping.

    Returns:
        Overrides in first-seen order.

    Example:
        >>> parse_options("Darkness=12 noAutodotted")
        {'Darkness': '12', 'Autodotted': 'false'}
    """
    if not text:
        return {}
    try:
        return _parse(text)
    except _MalformedOptions as e:
        logger.warning("Ignoring malformed job options %r: %s", text, e)
        return {}


def _parse(text: str) -> Dict[str, str]:
    options: Dict[str, str] = {}
    pos = 0
    end = len(text)

    while True:
        while pos < end and (text[pos] in _SPACES or text[pos] == ","):
            pos += 1
        if pos >= end:
            break

        start = pos
        while pos < end and text[pos] not in _NAME_STOP:
            pos += 1
        name = text[start:pos]
        if not name:
            raise _MalformedOptions(f"missing option name at offset {start}")

        pos = _skip_spaces(text, pos)
        if pos < end and text[pos] == "=":
            value, pos = _read_value(text, _skip_spaces(text, pos + 1))
        elif len(name) > 2 and name[:2].lower() == "no":
            name, value = name[2:], "false"
        else:
            value = "true"

        _add_option(options, name, value)

    return options


def _skip_spaces(text: str, pos: int) -> int:
    while pos < len(text) and text[pos] in _SPACES:
        pos += 1
    return pos


def _read_value(text: str, pos: int) -> tuple[str, int]:
    end = len(text)
    out: list[str] = []

    while pos < end and text[pos] not in _SPACES:
        ch = text[pos]
        if ch == "\\":
            if pos + 1 >= end:
                raise _MalformedOptions("dangling backslash")
            out.append(text[pos + 1])
            pos += 2
        elif ch in "'\"":
            close = ch
            pos += 1
            while True:
                if pos >= end:
                    raise _MalformedOptions(f"unterminated {close} quote")
                ch = text[pos]
                if ch == close:
                    pos += 1
                    break
                if ch == "\\" and pos + 1 < end:
                    out.append(text[pos + 1])
                    pos += 2
                else:
                    out.append(ch)
                    pos += 1
        elif ch == "{":
            collection, pos = _read_collection(text, pos)
            out.append(collection)
        else:
            out.append(ch)
            pos += 1

    return "".join(out), pos


def _read_collection(text: str, pos: int) -> tuple[str, int]:
    end = len(text)
    start = pos
    depth = 0
    quote: Optional[str] = None

    while pos < end:
        ch = text[pos]
        if ch == "\\":
            pos += 2
            continue
        if quote:
            if ch == quote:
                quote = None
        elif ch in "'\"":
            quote = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : pos + 1], pos + 1
        pos += 1

    raise _MalformedOptions("unterminated { collection")


def _add_option(options: Dict[str, str], name: str, value: str) -> None:
    lowered = name.lower()
    for existing in options:
        if existing.lower() == lowered:
            options[existing] = value
            return
    options[name] = value
