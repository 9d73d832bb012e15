# read version from installed package
from importlib.metadata import version
__version__ = version("unitlib")

from unitlib.core.algebraic import (
    Comparison,
    UnitVector,
    combine,
    compare,
    decompose,
    equal,
    scale,
    sqrt,
)
from unitlib.core.environment import (
    Environment,
    Failure,
)
from unitlib.core.formatting import STYLES
from unitlib.core.iotools import debugging
