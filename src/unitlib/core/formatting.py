import typing

from unitlib.core import algebraic
from unitlib.core import tables


STYLES = ('plain', 'latex-inline', 'latex-frac')
"""The known output styles."""


class StyleError(ValueError):
    """Unknown output style."""

    def __init__(self, style: typing.Any) -> None:
        self.style = style

    def __str__(self) -> str:
        return (
            f"Unknown style {self.style!r}; "
            f"expected one of {', '.join(STYLES)}"
        )


def standard_style(style: str) -> str:
    """Convert `style` to one of the names in `STYLES`."""
    if isinstance(style, str):
        name = style.strip().lower().replace('_', '-')
        if name in STYLES:
            return name
    raise StyleError(style)


def format_number(n: float) -> str:
    """Format a number with as few digits as will read back exactly.

    Integral values drop the trailing '.0'.
    """
    if n == 0:
        return '0'
    string = repr(float(n))
    if string.endswith('.0'):
        return string[:-2]
    return string


def format_scientific(n: float) -> str:
    """Format a number as a LaTeX mantissa and power of ten."""
    if n == 0:
        return '0'
    m, e = algebraic.decompose(n)
    mantissa = f"{m:.12g}"
    if e == 0:
        return mantissa
    if mantissa in {'1', '-1'}:
        return f"{mantissa[:-1]}10^{{{e}}}"
    return f"{mantissa} \\cdot 10^{{{e}}}"


Terms = typing.List[typing.Tuple[str, int]]


def _reduce(
    vector: algebraic.UnitVector,
    rules: typing.Optional[tables.RuleTable],
) -> typing.Optional[typing.Tuple[float, Terms]]:
    """Express `vector` as a multiple of a single rule, if possible."""
    if rules is None:
        return
    if rule := rules.reduce(vector):
        return vector.factor / rule.unit.factor, [(rule.symbol, 1)]


def _plain(factor: float, terms: Terms):
    """Generate the parts of a plain-text expression."""
    yield format_number(factor)
    for symbol, exponent in terms:
        yield ' '
        yield symbol
        if exponent != 1:
            yield f"^{exponent}"


def _latex_terms(terms: Terms):
    """Generate the parts of LaTeX terms that follow a factor."""
    for symbol, exponent in terms:
        yield f" \\text{{ {symbol}}}"
        if exponent != 1:
            yield f"^{{{exponent}}}"


def _latex_inline(factor: float, terms: Terms):
    """Generate the parts of an inline LaTeX expression."""
    yield '$'
    yield format_scientific(factor)
    yield from _latex_terms(terms)
    yield '$'


def _latex_frac(factor: float, terms: Terms):
    """Generate the parts of a LaTeX fraction."""
    numerator = [(s, e) for s, e in terms if e > 0]
    denominator = [(s, -e) for s, e in terms if e < 0]
    if not denominator:
        yield from _latex_inline(factor, terms)
        return
    yield '$\\frac{'
    yield format_scientific(factor)
    yield from _latex_terms(numerator)
    yield '}{'
    for i, (symbol, exponent) in enumerate(denominator):
        if i > 0:
            yield ' '
        yield f"\\text{{{symbol}}}"
        if exponent != 1:
            yield f"^{{{exponent}}}"
    yield '}$'


_WRITERS = {
    'plain': _plain,
    'latex-inline': _latex_inline,
    'latex-frac': _latex_frac,
}


def parts(
    vector: algebraic.UnitVector,
    style: str='plain',
    rules: tables.RuleTable=None,
    reduce: bool=False,
) -> typing.Iterator[str]:
    """Generate the pieces of the string representation of `vector`.

    See `~formatting.render` for a description of the parameters.
    """
    if not isinstance(vector, algebraic.UnitVector):
        raise algebraic.VectorTypeError(
            f"Can't format {type(vector)}"
        ) from None
    writer = _WRITERS[standard_style(style)]
    reduced = _reduce(vector, rules) if reduce else None
    if reduced:
        factor, terms = reduced
    else:
        factor, terms = vector.factor, list(vector)
    return writer(factor, terms)


def render(
    vector: algebraic.UnitVector,
    style: str='plain',
    rules: tables.RuleTable=None,
    reduce: bool=False,
) -> str:
    """Convert a unit vector into a string.

    Parameters
    ----------
    vector : `~algebraic.UnitVector`
        The unit vector to format.

    style : {'plain', 'latex-inline', 'latex-frac'}
        The output style. The plain style separates the factor and terms by
        spaces, as in '1 m kg s^-2'. The LaTeX styles wrap the expression in
        '$' and each symbol in '\\text{}'; 'latex-frac' moves terms with
        negative exponents into the denominator of '\\frac{}{}'.

    rules : `~tables.RuleTable`, optional
        The rules to search when `reduce` is true.

    reduce : bool, default=false
        If true, and some rule in `rules` has the same unit as `vector`, write
        `vector` as a multiple of that rule's symbol.

    Examples
    --------
    >>> render(algebraic.UnitVector({'kg': 1, 's': -2, 'm': 1}))
    '1 m kg s^-2'
    """
    return ''.join(parts(vector, style=style, rules=rules, reduce=reduce))


def measure(
    vector: algebraic.UnitVector,
    style: str='plain',
    rules: tables.RuleTable=None,
    reduce: bool=False,
) -> int:
    """The length of the string that `render` would produce."""
    return sum(
        len(part)
        for part in parts(vector, style=style, rules=rules, reduce=reduce)
    )
