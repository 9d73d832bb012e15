import enum
import math
import numbers
import typing

import numpy

from unitlib.core import metric


EPSILON = 1e-10
"""The absolute tolerance for comparing numerical factors."""


class VectorTypeError(TypeError):
    """A unit-vector operation received an invalid or missing argument."""


class VectorValueError(ValueError):
    """A unit-vector operation left the domain of real numbers."""


class NotSquareError(VectorValueError):
    """The unit vector is not a perfect square."""

    def __init__(self, vector: 'UnitVector') -> None:
        self.vector = vector

    def __str__(self) -> str:
        return f"Can't take the square root of {self.vector!r} (odd exponent)"


class NegativeFactorError(VectorValueError):
    """The factor of a unit vector under a square root is negative."""

    def __init__(self, factor: float) -> None:
        self.factor = factor

    def __str__(self) -> str:
        return f"Can't take the square root of the negative factor {self.factor}"


class Comparison(enum.Flag):
    """The result of comparing two unit vectors.

    Two vectors with matching exponents and matching factors compare as
    ``SAME_UNIT | SAME_FACTOR``, which is also available as ``EQUAL``.
    """

    DIFFERENT = 0
    SAME_UNIT = 1
    SAME_FACTOR = 2
    EQUAL = 3
    ERROR = 4


def _slot(key: typing.Union[int, str]) -> int:
    """Convert a base-unit symbol or an integer into an exponent index."""
    if isinstance(key, str):
        return metric.index(key)
    if isinstance(key, numbers.Integral):
        if -metric.NUM_BASE_UNITS <= key < metric.NUM_BASE_UNITS:
            return int(key)
        raise IndexError(f"No exponent slot {key}") from None
    raise VectorTypeError(
        f"Exponent slots are integers or base-unit symbols, not {type(key)}"
    ) from None


class UnitVector:
    """The exponents of all base units together with a numerical factor.

    Instances are mutable values: the algebraic functions in this module update
    them in place, and `copy` creates an independent duplicate. A new instance
    with no arguments is the identity (all exponents zero, factor 1).

    Parameters
    ----------
    exponents : mapping or sequence of int, optional
        Either a mapping from base-unit symbol (or slot index) to exponent, or
        a sequence with one integer per base unit.

    factor : real, default=1.0
        The numerical factor.

    Examples
    --------
    >>> UnitVector({'kg': 1, 's': -2, 'm': 1})
    UnitVector({'m': 1, 'kg': 1, 's': -2}, factor=1.0)
    """

    __slots__ = ('exponents', 'factor')

    def __init__(
        self,
        exponents: typing.Union[
            typing.Mapping[typing.Union[int, str], int],
            typing.Sequence[int],
            None,
        ]=None,
        factor: numbers.Real=1.0,
    ) -> None:
        array = numpy.zeros(metric.NUM_BASE_UNITS, dtype=int)
        if isinstance(exponents, typing.Mapping):
            for key, value in exponents.items():
                array[_slot(key)] = value
        elif exponents is not None:
            values = numpy.asarray(exponents, dtype=int)
            if values.shape != array.shape:
                raise VectorValueError(
                    f"Expected {metric.NUM_BASE_UNITS} exponents"
                    f", not {values.size}"
                ) from None
            array[:] = values
        self.exponents = array
        """The integral exponent of each base unit."""
        self.factor = finite(factor)
        """The numerical factor."""

    def copy(self):
        """Create an independent copy of this vector."""
        return type(self)(self.exponents.copy(), self.factor)

    def isidentity(self) -> bool:
        """True if this is the dimensionless vector with factor 1."""
        return equal(self, type(self)())

    def __getitem__(self, key: typing.Union[int, str]) -> int:
        """The exponent of a base unit, by slot index or symbol."""
        return int(self.exponents[_slot(key)])

    def __setitem__(self, key: typing.Union[int, str], value: int) -> None:
        """Set the exponent of a base unit, by slot index or symbol."""
        self.exponents[_slot(key)] = value

    def __iter__(self) -> typing.Iterator[typing.Tuple[str, int]]:
        """Iterate over (symbol, exponent) pairs with non-zero exponent."""
        for symbol, exponent in zip(metric.SYMBOLS, self.exponents):
            if exponent != 0:
                yield symbol, int(exponent)

    def __eq__(self, other) -> bool:
        """True if both vectors have equal exponents and factors."""
        if not isinstance(other, UnitVector):
            return NotImplemented
        return equal(self, other)

    def __mul__(self, other):
        """Called for self * other."""
        if isinstance(other, UnitVector):
            return combine(self.copy(), other)
        if isinstance(other, numbers.Real):
            return scale(self.copy(), other)
        return NotImplemented

    def __rmul__(self, other):
        """Called for other * self."""
        if isinstance(other, numbers.Real):
            return scale(self.copy(), other)
        return NotImplemented

    def __truediv__(self, other):
        """Called for self / other."""
        if isinstance(other, UnitVector):
            return combine(self.copy(), other, -1)
        if isinstance(other, numbers.Real):
            return scale(self.copy(), power(other, -1))
        return NotImplemented

    def __pow__(self, other):
        """Called for self ** other."""
        if isinstance(other, numbers.Integral):
            return combine(type(self)(), self, int(other))
        return NotImplemented

    def __repr__(self) -> str:
        """An unambiguous representation of this object."""
        terms = dict(self)
        return f"{self.__class__.__qualname__}({terms}, factor={self.factor})"

    def __str__(self) -> str:
        """A simplified representation of this object."""
        terms = [
            symbol if exponent == 1 else f"{symbol}^{exponent}"
            for symbol, exponent in self
        ]
        return ' '.join([f"{self.factor:g}", *terms])


def _require(*vectors):
    """Raise an exception if any argument is not a unit vector."""
    for vector in vectors:
        if vector is None:
            raise VectorTypeError("Missing unit vector") from None
        if not isinstance(vector, UnitVector):
            raise VectorTypeError(
                f"Expected a unit vector, not {type(vector)}"
            ) from None


def finite(factor: numbers.Real) -> float:
    """Convert `factor` to a float that is neither infinite nor NaN."""
    value = float(factor)
    if not math.isfinite(value):
        raise VectorValueError(
            f"The factor {factor} is out of range"
        ) from None
    return value


def power(base: numbers.Real, exponent: int) -> float:
    """Raise `base` to an integral power.

    A zero exponent yields exactly 1, even when `base` is 0.
    """
    base = finite(base)
    if exponent == 0:
        return 1.0
    if base == 0 and exponent < 0:
        raise VectorValueError(
            f"Can't raise zero to the negative power {exponent}"
        ) from None
    try:
        return float(base) ** int(exponent)
    except OverflowError as err:
        raise VectorValueError(
            f"The factor {base} ** {exponent} is out of range"
        ) from err


def copy(vector: UnitVector) -> UnitVector:
    """Create an independent copy of `vector`."""
    _require(vector)
    return vector.copy()


def combine(dst: UnitVector, src: UnitVector, exponent: int=1) -> UnitVector:
    """Multiply `dst` in place by `src` raised to `exponent`.

    Returns
    -------
    `~algebraic.UnitVector`
        The updated instance of `dst`.
    """
    _require(dst, src)
    factor = finite(dst.factor * power(src.factor, exponent))
    dst.exponents += src.exponents * int(exponent)
    dst.factor = factor
    return dst


def scale(dst: UnitVector, k: numbers.Real) -> UnitVector:
    """Multiply the factor of `dst` in place by `k`."""
    _require(dst)
    dst.factor = finite(dst.factor * finite(k))
    return dst


def sqrt(vector: UnitVector) -> UnitVector:
    """Take the square root of `vector` in place.

    Every exponent must be even. Negative factors are outside the domain of
    this operation.
    """
    _require(vector)
    if numpy.any(vector.exponents % 2):
        raise NotSquareError(vector)
    if finite(vector.factor) < 0:
        raise NegativeFactorError(vector.factor)
    vector.exponents //= 2
    vector.factor = math.sqrt(vector.factor)
    return vector


def same_unit(a: UnitVector, b: UnitVector) -> bool:
    """True if all exponents of `a` and `b` agree."""
    return bool(numpy.array_equal(a.exponents, b.exponents))


def same_factor(a: UnitVector, b: UnitVector) -> bool:
    """True if the factors of `a` and `b` agree to within `EPSILON`."""
    return abs(a.factor - b.factor) < EPSILON


def equal(a: UnitVector, b: UnitVector) -> bool:
    """True if `a` and `b` have the same unit and the same factor."""
    _require(a, b)
    return same_unit(a, b) and same_factor(a, b)


def compare(
    a: typing.Optional[UnitVector],
    b: typing.Optional[UnitVector],
) -> Comparison:
    """Compare two unit vectors.

    Returns
    -------
    `~algebraic.Comparison`
        ``ERROR`` if either argument is missing; otherwise the combination of
        ``SAME_UNIT`` and ``SAME_FACTOR`` that applies, or ``DIFFERENT``.
    """
    if not isinstance(a, UnitVector) or not isinstance(b, UnitVector):
        return Comparison.ERROR
    result = Comparison.DIFFERENT
    if same_unit(a, b):
        result |= Comparison.SAME_UNIT
    if same_factor(a, b):
        result |= Comparison.SAME_FACTOR
    return result


def decompose(n: numbers.Real) -> typing.Tuple[float, int]:
    """Split `n` into a mantissa and a power of ten.

    The result `(m, e)` satisfies ``n == m * 10**e`` with ``1 <= |m| < 10``.
    Exact powers of ten produce a mantissa of exactly 1 (or -1), and zero
    produces ``(0.0, 0)``.

    Examples
    --------
    >>> decompose(-1234)
    (-1.234, 3)
    >>> decompose(0.01)
    (1.0, -2)
    """
    n = finite(n)
    if n == 0:
        return 0.0, 0
    e = math.floor(math.log10(abs(n)))
    m = n / 10.0**e
    if abs(m) >= 10.0:
        m /= 10.0
        e += 1
    elif abs(m) < 1.0:
        m *= 10.0
        e -= 1
    if abs(abs(m) - 10.0) < EPSILON:
        m /= 10.0
        e += 1
    if abs(abs(m) - 1.0) < EPSILON:
        m = math.copysign(1.0, m)
    return m, e
