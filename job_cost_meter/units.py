"""
Rate unit parsing.

Rate values are normalized to a fixed reference unit before any cost is
computed: milli-currency per node-year for time rates, milli-currency per
kWh for energy rates. Factors are exact Decimals, so `1/s` (31,536,000,000
milli-units per year) and `m/a` (1) live on the same scale without drift.
"""

from decimal import Decimal
from typing import Dict


class UnitError(ValueError):
    """Raised when a unit string does not follow the rate unit grammar."""


# Currency prefix -> milli-units of the base currency
PREFIX_FACTORS: Dict[str, Decimal] = {
    "M": Decimal(1000000) * 1000,
    "k": Decimal(1000) * 1000,
    "1": Decimal(1) * 1000,
    "c": Decimal(1000) / 100,
    "m": Decimal(1000) / 1000,
}

# Time period -> periods per year
PERIOD_FACTORS: Dict[str, Decimal] = {
    "a": Decimal(1),
    "mon": Decimal(12),
    "w": Decimal(52),
    "d": Decimal(365),
    "h": Decimal(365 * 24),
    "min": Decimal(365 * 24 * 60),
    "s": Decimal(365 * 24 * 3600),
}

ENERGY_UNIT = "kWh"


def parse_time_unit(unit: str) -> Decimal:
    """
    Return the factor converting a time rate in `unit` to milli-currency/year.

    Args:
        unit: Unit string of the form `<prefix>/<period>`, e.g. `c/h`

    Returns:
        Exact conversion factor

    Raises:
        UnitError: If the separator, prefix or period is not recognized
    """
    if "/" not in unit:
        raise UnitError(f"illegal unit string '{unit}'")
    prefix, period = unit.split("/", 1)
    if prefix not in PREFIX_FACTORS:
        raise UnitError(f"illegal prefix in unit string '{unit}'")
    if period not in PERIOD_FACTORS:
        raise UnitError(f"illegal time unit in unit string '{unit}'")
    return PREFIX_FACTORS[prefix] * PERIOD_FACTORS[period]


def parse_energy_unit(unit: str) -> Decimal:
    """
    Return the factor converting an energy rate in `unit` to milli-currency/kWh.

    Only `<prefix>/kWh` is accepted.
    """
    prefix, sep, energy = unit.partition("/")
    if not sep or prefix not in PREFIX_FACTORS or energy != ENERGY_UNIT:
        raise UnitError(f"illegal energy unit string '{unit}'")
    return PREFIX_FACTORS[prefix]
