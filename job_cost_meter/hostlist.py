"""
Node name sets: hostlist expansion and overlap counting.

SLURM writes node sets in a compact notation such as `machine[7-23,1075]`.
`expand_hostlist` turns that into the explicit, sorted, deduplicated list of
names; `overlap_count` then counts the nodes two such lists have in common.
"""

import re
from itertools import product
from typing import Callable, List, Sequence

# Node list values that mean "no node was ever allocated"
NO_NODES = ("", "None assigned", "(null)")

HostlistExpander = Callable[[str], List[str]]

_RANGE_RE = re.compile(r"^(\d+)(?:-(\d+))?$")


def _split_top_level(expr: str) -> List[str]:
    """Split a hostlist on commas that are not inside brackets."""
    items = []
    depth = 0
    current = []
    for ch in expr:
        if ch == "[":
            depth += 1
            if depth > 1:
                raise ValueError(f"nested brackets in hostlist '{expr}'")
        elif ch == "]":
            depth -= 1
            if depth < 0:
                raise ValueError(f"unbalanced ']' in hostlist '{expr}'")
        if ch == "," and depth == 0:
            items.append("".join(current))
            current = []
        else:
            current.append(ch)
    if depth != 0:
        raise ValueError(f"unbalanced '[' in hostlist '{expr}'")
    items.append("".join(current))
    return [item.strip() for item in items if item.strip()]


def _expand_range_set(body: str, expr: str) -> List[str]:
    """Expand the inside of one bracket group, e.g. `01-03,7`."""
    values = []
    for chunk in body.split(","):
        chunk = chunk.strip()
        m = _RANGE_RE.match(chunk)
        if not m:
            raise ValueError(f"illegal range '{chunk}' in hostlist '{expr}'")
        low_text, high_text = m.group(1), m.group(2)
        if high_text is None:
            values.append(low_text)
            continue
        low, high = int(low_text), int(high_text)
        if high < low:
            raise ValueError(f"descending range '{chunk}' in hostlist '{expr}'")
        width = len(low_text)
        values.extend(str(n).zfill(width) for n in range(low, high + 1))
    return values


def _expand_item(item: str, expr: str) -> List[str]:
    """Expand one top-level hostlist item into explicit names."""
    pieces: List[List[str]] = []
    pos = 0
    while pos < len(item):
        start = item.find("[", pos)
        if start < 0:
            pieces.append([item[pos:]])
            break
        end = item.index("]", start)
        if start > pos:
            pieces.append([item[pos:start]])
        pieces.append(_expand_range_set(item[start + 1:end], expr))
        pos = end + 1
    return ["".join(parts) for parts in product(*pieces)]


def expand_hostlist(expr: str) -> List[str]:
    """
    Expand a SLURM hostlist expression into sorted, unique node names.

    Examples:
        >>> expand_hostlist("a[1-3],b7")
        ['a1', 'a2', 'a3', 'b7']
        >>> expand_hostlist("n[08-10]")
        ['n08', 'n09', 'n10']

    Args:
        expr: Compact hostlist expression. Empty or `None assigned`
              expands to an empty list.

    Raises:
        ValueError: If brackets or ranges are malformed
    """
    expr = (expr or "").strip()
    if expr in NO_NODES:
        return []
    names = set()
    for item in _split_top_level(expr):
        names.update(_expand_item(item, expr))
    return sorted(names)


def overlap_count(a: Sequence[str], b: Sequence[str]) -> int:
    """
    Count the names two node sets have in common.

    Both inputs must be sorted and free of duplicates (as returned by
    `expand_hostlist`). The union of the two is counted in a single merge
    pass, and the overlap follows as `|A| + |B| - |A u B|`.
    """
    i = j = union = 0
    len_a, len_b = len(a), len(b)
    while i < len_a and j < len_b:
        if a[i] == b[j]:
            i += 1
            j += 1
        elif a[i] < b[j]:
            i += 1
        else:
            j += 1
        union += 1
    union += (len_a - i) + (len_b - j)
    return len_a + len_b - union
