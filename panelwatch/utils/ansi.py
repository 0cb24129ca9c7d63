"""ANSI SGR decoder for streamed console output.

Splits a chunk of console text into styled runs. Only the ``ESC [ <params> m``
(select graphic rendition) family is interpreted; every other byte is literal
text. The decoder keeps no state between calls, so a sequence cut across two
chunks renders literally unless the caller re-decodes the joined buffer.
"""

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

ESC = "\x1b"

_SGR_PATTERN = re.compile(r"\x1b\[([0-9;]*)m")


class AnsiColor(str, Enum):
    BLACK = "black"
    RED = "red"
    GREEN = "green"
    YELLOW = "yellow"
    BLUE = "blue"
    MAGENTA = "magenta"
    CYAN = "cyan"
    WHITE = "white"
    BRIGHT_BLACK = "bright_black"
    BRIGHT_RED = "bright_red"
    BRIGHT_GREEN = "bright_green"
    BRIGHT_YELLOW = "bright_yellow"
    BRIGHT_BLUE = "bright_blue"
    BRIGHT_MAGENTA = "bright_magenta"
    BRIGHT_CYAN = "bright_cyan"
    BRIGHT_WHITE = "bright_white"


_FOREGROUND_CODES: dict[int, AnsiColor] = {
    30: AnsiColor.BLACK,
    31: AnsiColor.RED,
    32: AnsiColor.GREEN,
    33: AnsiColor.YELLOW,
    34: AnsiColor.BLUE,
    35: AnsiColor.MAGENTA,
    36: AnsiColor.CYAN,
    37: AnsiColor.WHITE,
    90: AnsiColor.BRIGHT_BLACK,
    91: AnsiColor.BRIGHT_RED,
    92: AnsiColor.BRIGHT_GREEN,
    93: AnsiColor.BRIGHT_YELLOW,
    94: AnsiColor.BRIGHT_BLUE,
    95: AnsiColor.BRIGHT_MAGENTA,
    96: AnsiColor.BRIGHT_CYAN,
    97: AnsiColor.BRIGHT_WHITE,
}


@dataclass(frozen=True)
class TextStyle:
    """Rendering attributes of a run. ``color=None`` is the terminal default."""

    color: Optional[AnsiColor] = None
    bold: bool = False

    @property
    def is_default(self) -> bool:
        return self.color is None and not self.bold


DEFAULT_STYLE = TextStyle()


@dataclass(frozen=True)
class StyledRun:
    text: str
    style: TextStyle = DEFAULT_STYLE


def _apply_code(style: TextStyle, code: int) -> TextStyle:
    if code == 0:
        return DEFAULT_STYLE
    if code == 1:
        return replace(style, bold=True)
    if code == 22:
        return replace(style, bold=False)
    if code == 39:
        return replace(style, color=None)
    color = _FOREGROUND_CODES.get(code)
    if color is not None:
        return replace(style, color=color)
    # Unsupported attribute (underline, background, 256-colour...)
    return style


# Arguments following 38/48: ";5;N" (256-colour) or ";2;R;G;B" (truecolour)
_EXTENDED_COLOR_ARGS = {5: 1, 2: 3}


def _apply_params(style: TextStyle, params: str) -> TextStyle:
    codes = [int(p) for p in params.split(";") if p.isdigit()]
    if not codes:
        return DEFAULT_STYLE
    i = 0
    while i < len(codes):
        code = codes[i]
        if code in (38, 48):
            mode = codes[i + 1] if i + 1 < len(codes) else None
            i += 2 + _EXTENDED_COLOR_ARGS.get(mode, -1)
            continue
        style = _apply_code(style, code)
        i += 1
    return style


def decode(raw: str) -> list[StyledRun]:
    """Decode ``raw`` into styled text runs in source order.

    An empty or missing parameter list resets to the default style, as does
    an explicit ``0``. Empty text between two escape codes yields no run.
    """
    runs: list[StyledRun] = []
    style = DEFAULT_STYLE
    cursor = 0

    for match in _SGR_PATTERN.finditer(raw):
        if match.start() > cursor:
            runs.append(StyledRun(raw[cursor:match.start()], style))
        style = _apply_params(style, match.group(1))
        cursor = match.end()

    if cursor < len(raw):
        runs.append(StyledRun(raw[cursor:], style))

    return runs


def strip(raw: str) -> str:
    """Return ``raw`` with every SGR sequence removed."""
    return _SGR_PATTERN.sub("", raw)


class AnsiTextDecoder:
    """Object wrapper around :func:`decode` for callers that inject decoders."""

    def decode(self, raw: str) -> list[StyledRun]:
        return decode(raw)

    def strip(self, raw: str) -> str:
        return strip(raw)
