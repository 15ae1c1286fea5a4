"""
Rate configuration: parsing and the immutable configuration model.

The configuration file is line oriented. `#` starts a comment, blank lines
are ignored, and every remaining line is one directive:

    currency Euro
    nodes Base machine[0-999]
        rate Procurement 1000 1/a
        rate Cooling 4 c/h
    nodes GPU machine[500-699]
        energy-rate Power 30 c/kWh

Rates apply to the node group of the closest preceding `nodes` directive.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple
import os
import stat

from .errors import ConfigError, SourceContractError
from .hostlist import HostlistExpander, expand_hostlist
from .units import UnitError, parse_energy_unit, parse_time_unit


DEFAULT_CURRENCY = "dollar"


class RateKind(Enum):
    """Kind of a configured rate."""
    TIME = "rate"  # currency per node per time period
    ENERGY = "energy-rate"  # currency per kWh

    @property
    def directive(self) -> str:
        return self.value


@dataclass(frozen=True)
class NodeGroup:
    """A named set of node names sharing one or more rates."""
    name: str
    hostlist: str
    members: Tuple[str, ...]  # sorted, unique
    key: str = ""

    @property
    def size(self) -> int:
        return len(self.members)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "key": self.key,
            "hostlist": self.hostlist,
            "size": self.size,
        }


@dataclass(frozen=True)
class Rate:
    """A cost coefficient normalized to the canonical reference unit."""
    name: str
    kind: RateKind
    group: NodeGroup
    value: Decimal
    unit: str
    canonical_value: Decimal  # milli-currency per node-year, or per kWh
    key: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "key": self.key,
            "kind": self.kind.value,
            "group": self.group.key,
            "value": str(self.value),
            "unit": self.unit,
            "canonical_value": str(self.canonical_value),
        }


@dataclass(frozen=True)
class Configuration:
    """
    Parsed rate configuration.

    Groups and rates keep their declaration order, which is also the order
    in which costs are reported.
    """
    currency: str = DEFAULT_CURRENCY
    groups: Tuple[NodeGroup, ...] = ()
    rates: Tuple[Rate, ...] = ()
    source: Optional[str] = None

    def rates_for(self, group: NodeGroup) -> List[Rate]:
        """Return the rates declared under `group`."""
        return [r for r in self.rates if r.group is group]

    def groups_with_rates(self) -> Iterator[Tuple[NodeGroup, List[Rate]]]:
        """Yield `(group, rates)` pairs in declaration order."""
        for group in self.groups:
            yield group, self.rates_for(group)

    def to_dict(self) -> dict:
        return {
            "currency": self.currency,
            "source": self.source,
            "groups": [g.to_dict() for g in self.groups],
            "rates": [r.to_dict() for r in self.rates],
        }


@dataclass
class _PendingRate:
    name: str
    kind: RateKind
    group_index: int
    value: Decimal
    unit: str
    canonical_value: Decimal


@dataclass
class _ParseState:
    currency: Optional[str] = None
    groups: List[NodeGroup] = field(default_factory=list)
    rates: List[_PendingRate] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def error(self, lineno: int, message: str) -> None:
        self.errors.append(f"line {lineno}: {message}")


def _strip_comment(line: str) -> str:
    return line.split("#", 1)[0].strip()


def _unique_keys(names: List[str], qualifiers: Optional[List[str]] = None) -> List[str]:
    """
    Assign a column key to each name.

    The plain name is used when it is unique, `<qualifier>/<name>` when that
    is unique, and `<name>#<n>` (1-based occurrence) otherwise.
    """
    counts: Dict[str, int] = {}
    for name in names:
        counts[name] = counts.get(name, 0) + 1
    if qualifiers is None:
        qualified = [f"{n}#" for n in names]
    else:
        qualified = [f"{q}/{n}" for q, n in zip(qualifiers, names)]
    qualified_counts: Dict[str, int] = {}
    for q in qualified:
        qualified_counts[q] = qualified_counts.get(q, 0) + 1

    keys = []
    seen: Dict[str, int] = {}
    for name, q in zip(names, qualified):
        seen[name] = seen.get(name, 0) + 1
        if counts[name] == 1:
            keys.append(name)
        elif qualified_counts[q] == 1:
            keys.append(q)
        else:
            keys.append(f"{name}#{seen[name]}")
    return keys


def _parse_rate(
    state: _ParseState,
    lineno: int,
    kind: RateKind,
    args: List[str],
) -> None:
    directive = kind.directive
    if not state.groups:
        state.error(lineno, f"'{directive}' command used before the first 'nodes' command")
    if len(args) != 3:
        state.error(lineno, f"'{directive}' expects <name> <value> <unit>, got {len(args)} argument(s)")
        return

    name, value_text, unit = args
    try:
        value = Decimal(value_text)
        if not value.is_finite():
            raise InvalidOperation(value_text)
    except InvalidOperation:
        state.error(lineno, f"rate '{name}': illegal value '{value_text}'")
        return

    try:
        if kind is RateKind.TIME:
            factor = parse_time_unit(unit)
        else:
            factor = parse_energy_unit(unit)
    except UnitError as e:
        state.error(lineno, f"rate '{name}': {e}")
        return

    if state.groups:
        state.rates.append(_PendingRate(
            name=name,
            kind=kind,
            group_index=len(state.groups) - 1,
            value=value,
            unit=unit,
            canonical_value=value * factor,
        ))


def parse_config(
    text: str,
    expand: HostlistExpander = expand_hostlist,
    source: Optional[str] = None,
) -> Configuration:
    """
    Parse rate configuration text.

    All problems are collected before failing, so a single run reports
    every broken line.

    Args:
        text: Configuration file contents
        expand: Hostlist expander used for `nodes` directives
        source: Optional origin of the text (for reporting)

    Returns:
        Configuration instance

    Raises:
        ConfigError: With one message per problem found
    """
    state = _ParseState()

    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        line = _strip_comment(raw_line)
        if not line:
            continue
        cmd, *args = line.split()

        if cmd == "currency":
            if state.currency is not None:
                state.error(lineno, "currency command used twice")
            if len(args) != 1:
                state.error(lineno, "currency command expects exactly one name")
            if args:
                state.currency = args[0]
        elif cmd == "nodes":
            if len(args) < 2:
                state.error(lineno, "'nodes' expects <name> <hostlist>")
                continue
            name, hostlist = args[0], ",".join(args[1:])
            try:
                members = tuple(sorted(set(expand(hostlist))))
            except (ValueError, SourceContractError) as e:
                state.error(lineno, f"node set '{name}': {e}")
                members = ()
            state.groups.append(NodeGroup(name=name, hostlist=hostlist, members=members))
        elif cmd == RateKind.TIME.directive:
            _parse_rate(state, lineno, RateKind.TIME, args)
        elif cmd == RateKind.ENERGY.directive:
            _parse_rate(state, lineno, RateKind.ENERGY, args)
        else:
            state.error(lineno, f"unknown command '{cmd}'")

    if state.errors:
        raise ConfigError(state.errors)

    group_keys = _unique_keys([g.name for g in state.groups])
    groups = tuple(
        NodeGroup(name=g.name, hostlist=g.hostlist, members=g.members, key=k)
        for g, k in zip(state.groups, group_keys)
    )
    rate_keys = _unique_keys(
        [r.name for r in state.rates],
        [groups[r.group_index].name for r in state.rates],
    )
    rates = tuple(
        Rate(
            name=r.name,
            kind=r.kind,
            group=groups[r.group_index],
            value=r.value,
            unit=r.unit,
            canonical_value=r.canonical_value,
            key=k,
        )
        for r, k in zip(state.rates, rate_keys)
    )

    return Configuration(
        currency=state.currency or DEFAULT_CURRENCY,
        groups=groups,
        rates=rates,
        source=source,
    )


def check_config_permissions(path: Path) -> List[str]:
    """
    Return problems with the ownership/mode of a config file.

    The file must belong to the effective user and must not be writable by
    group or others. Returns an empty list if the file is acceptable.
    """
    st = path.stat()
    errors = []
    if st.st_uid != os.geteuid() or st.st_gid != os.getegid():
        errors.append("config file must be owned by the user executing this script")
    elif st.st_mode & (stat.S_IWGRP | stat.S_IWOTH):
        errors.append("config file must not be writable by other users")
    return errors


def load_config(
    path: str | Path,
    expand: HostlistExpander = expand_hostlist,
    check_permissions: bool = False,
) -> Configuration:
    """
    Load a rate configuration from a file.

    Args:
        path: Path to the configuration file
        expand: Hostlist expander used for `nodes` directives
        check_permissions: Refuse files not owned by the effective user or
                           writable by others (for use from a root epilog)

    Returns:
        Configuration instance

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigError: If the file is invalid
    """
    path = Path(path)
    if check_permissions:
        errors = check_config_permissions(path)
        if errors:
            raise ConfigError(errors)
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    return parse_config(text, expand=expand, source=str(path))
