import typing


_base_units = [
    {
        'symbol': 'm',
        'name': 'meter',
        'quantity': 'length',
    },
    {
        'symbol': 'kg',
        'name': 'kilogram',
        'quantity': 'mass',
    },
    {
        'symbol': 's',
        'name': 'second',
        'quantity': 'time',
    },
    {
        'symbol': 'A',
        'name': 'ampere',
        'quantity': 'current',
    },
    {
        'symbol': 'K',
        'name': 'kelvin',
        'quantity': 'temperature',
    },
    {
        'symbol': 'mol',
        'name': 'mole',
        'quantity': 'amount',
    },
    {
        'symbol': 'Cd',
        'name': 'candela',
        'quantity': 'luminous intensity',
    },
]


# NOTE: 'deca' is missing because its symbol has two characters.
_prefixes = [
    {'symbol': 'Y', 'name': 'yotta', 'factor': 1e+24},
    {'symbol': 'Z', 'name': 'zetta', 'factor': 1e+21},
    {'symbol': 'E', 'name': 'exa', 'factor': 1e+18},
    {'symbol': 'P', 'name': 'peta', 'factor': 1e+15},
    {'symbol': 'T', 'name': 'tera', 'factor': 1e+12},
    {'symbol': 'G', 'name': 'giga', 'factor': 1e+9},
    {'symbol': 'M', 'name': 'mega', 'factor': 1e+6},
    {'symbol': 'k', 'name': 'kilo', 'factor': 1e+3},
    {'symbol': 'h', 'name': 'hecto', 'factor': 1e+2},
    {'symbol': 'd', 'name': 'deci', 'factor': 1e-1},
    {'symbol': 'c', 'name': 'centi', 'factor': 1e-2},
    {'symbol': 'm', 'name': 'milli', 'factor': 1e-3},
    {'symbol': 'u', 'name': 'micro', 'factor': 1e-6},
    {'symbol': 'n', 'name': 'nano', 'factor': 1e-9},
    {'symbol': 'p', 'name': 'pico', 'factor': 1e-12},
    {'symbol': 'f', 'name': 'femto', 'factor': 1e-15},
    {'symbol': 'a', 'name': 'atto', 'factor': 1e-18},
    {'symbol': 'z', 'name': 'zepto', 'factor': 1e-21},
    {'symbol': 'y', 'name': 'yocto', 'factor': 1e-24},
]


class Prefix(typing.NamedTuple):
    """Metadata for a metric order-of-magnitude prefix."""

    symbol: str
    name: str
    factor: float


class BaseUnit(typing.NamedTuple):
    """Metadata for the unit of one base dimension."""

    symbol: str
    name: str
    quantity: str


BASE_UNITS: typing.Tuple[BaseUnit, ...] = tuple(
    BaseUnit(**unit) for unit in _base_units
)
"""The base units, in the order of their exponent slots."""


PREFIXES: typing.Tuple[Prefix, ...] = tuple(
    Prefix(**prefix) for prefix in _prefixes
)
"""The single-character SI prefixes, from largest to smallest."""


SYMBOLS: typing.Tuple[str, ...] = tuple(unit.symbol for unit in BASE_UNITS)
"""The symbols of the base units, in slot order."""


NUM_BASE_UNITS = len(BASE_UNITS)
"""The number of orthogonal base dimensions."""


GRAM = {'symbol': 'g', 'base': 'kg', 'factor': 1e-3}
"""The rule that defines the gram in terms of the kilogram.

The SI base unit of mass already carries a prefix, so the parser needs an
explicit 'g' rule in order to understand 'mg', 'ug', and so on.
"""


def index(symbol: str) -> int:
    """The exponent slot of the named base unit.

    Parameters
    ----------
    symbol : string
        The symbol (e.g., 'kg') or full name (e.g., 'kilogram') of a base unit.

    Returns
    -------
    int
        The index of the corresponding exponent.

    Raises
    ------
    KeyError
        If `symbol` does not name a base unit.
    """
    for i, unit in enumerate(BASE_UNITS):
        if symbol in (unit.symbol, unit.name):
            return i
    raise KeyError(f"No base unit called {symbol!r}") from None
