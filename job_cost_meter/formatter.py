"""
Plain-text formatting primitives for terminal reports.

All functions return plain text; box-drawing characters are used for
tables, ANSI color is only added by colorize() for interactive terminals.
"""

import os
import sys
from typing import Any, Sequence, Tuple


def supports_color() -> bool:
    """Detect whether stdout supports ANSI color output.

    Respects NO_COLOR (https://no-color.org/) and FORCE_COLOR env vars.
    """
    if os.environ.get('NO_COLOR') is not None:
        return False
    if os.environ.get('FORCE_COLOR') is not None:
        return True
    if not hasattr(sys.stdout, 'isatty'):
        return False
    return sys.stdout.isatty()


# ── Box-drawing characters ──────────────────────────────────────────

_HEAVY_H = '═'
_LIGHT_H = '─'

_TL = '┌'
_TR = '┐'
_BL = '└'
_BR = '┘'
_VL = '│'
_TJ = '┬'
_BJ = '┴'
_CJ = '┼'
_LJ = '├'
_RJ = '┤'


# ── Formatting primitives ──────────────────────────────────────────

def title(text: str, width: int = 60) -> str:
    """Title centered between two heavy bars.

    Example::

        ════════════════════════
           job cost estimate
        ════════════════════════
    """
    width = max(width, len(text) + 4)
    bar = _HEAVY_H * width
    return f"{bar}\n{text.center(width).rstrip()}\n{bar}"


def separator(width: int = 60) -> str:
    """Light horizontal rule."""
    return _LIGHT_H * width


def kv_block(items: Sequence[Tuple[str, str]], indent: int = 2) -> str:
    """Aligned key-value pairs with dot leaders, values right aligned.

    Example::

        Procurement ····   12.50 Euro
        Cooling ········    0.80 Euro
    """
    if not items:
        return ""
    max_key = max(len(k) for k, _ in items)
    max_value = max(len(v) for _, v in items)
    prefix = ' ' * indent
    lines = []
    for key, value in items:
        dots = '·' * (max_key - len(key) + 2)
        lines.append(f"{prefix}{key} {dots} {value.rjust(max_value)}")
    return "\n".join(lines)


def table(
    headers: Sequence[str],
    rows: Sequence[Sequence[Any]],
    row_separators: Sequence[int] = (),
) -> str:
    """Box-drawing bordered table.

    The first column is left aligned, all others right aligned.

    Args:
        headers: Column header strings.
        rows: List of row data (each row is a sequence of values).
        row_separators: Row indices before which a separator line is drawn.

    Example::

        ┌───────┬──────┬────────────┐
        │ Job   │ Size │      Total │
        ├───────┼──────┼────────────┤
        │ 42    │    4 │ 12.50 Euro │
        └───────┴──────┴────────────┘
    """
    if not headers:
        return ""

    n_cols = len(headers)

    widths = [0] * n_cols
    for row in [headers] + list(rows):
        for i in range(n_cols):
            cell = row[i] if i < len(row) else ''
            widths[i] = max(widths[i], len(str(cell)))

    def _row_line(row: Sequence[Any]) -> str:
        cells = []
        for i in range(n_cols):
            s = str(row[i]) if i < len(row) else ''
            s = s.ljust(widths[i]) if i == 0 else s.rjust(widths[i])
            cells.append(f" {s} ")
        return _VL + _VL.join(cells) + _VL

    def _h_line(left: str, mid: str, right: str) -> str:
        return left + mid.join(_LIGHT_H * (w + 2) for w in widths) + right

    lines = [_h_line(_TL, _TJ, _TR)]
    lines.append(_row_line(headers))
    lines.append(_h_line(_LJ, _CJ, _RJ))
    separators = set(row_separators)
    for index, row in enumerate(rows):
        if index in separators and index > 0:
            lines.append(_h_line(_LJ, _CJ, _RJ))
        lines.append(_row_line(row))
    lines.append(_h_line(_BL, _BJ, _BR))

    return "\n".join(lines)


# ── ANSI Color Post-Processing ─────────────────────────────────────

_RESET = '\033[0m'
_BOLD = '\033[1m'
_DIM = '\033[2m'
_CYAN = '\033[36m'
_YELLOW = '\033[33m'


def colorize(text: str) -> str:
    """Apply ANSI colors to formatted text.

    - Title bars and titles → bold cyan
    - Table borders and rules → dim
    - Lines starting with "total:" → bold
    - Group headings (lines ending in ':') → yellow
    """
    lines = text.split('\n')
    result = []
    in_title = False
    for line in lines:
        stripped = line.strip()
        if stripped and all(c == _HEAVY_H for c in stripped):
            in_title = not in_title
            result.append(f"{_BOLD}{_CYAN}{line}{_RESET}")
        elif in_title:
            result.append(f"{_BOLD}{_CYAN}{line}{_RESET}")
        elif stripped and stripped[0] in (_TL, _BL, _LJ, _LIGHT_H):
            result.append(f"{_DIM}{line}{_RESET}")
        elif _VL in line:
            result.append(f"{_DIM}{_VL}{_RESET}".join(line.split(_VL)))
        elif stripped.startswith('total:'):
            result.append(f"{_BOLD}{line}{_RESET}")
        elif stripped.endswith(':'):
            result.append(f"{_YELLOW}{line}{_RESET}")
        else:
            result.append(line)
    return '\n'.join(result)
