import enum
import logging
import re
import typing

from unitlib.core import algebraic
from unitlib.core import tables


logger = logging.getLogger(__name__)


STACK_SIZE = 16
"""The default number of frames in the parser stack."""

MAX_SYMBOL_SIZE = 128
"""The default maximum length of a symbol."""

MAX_ITEM_SIZE = 1024
"""The default maximum length of a single token."""


class ParsingError(ValueError):
    """Cannot create a unit vector from the given string."""

    def __init__(self, arg: typing.Any) -> None:
        self.arg = arg

    def __str__(self) -> str:
        return str(self.arg)


class ParsingTypeError(TypeError):
    """The object to parse is not a string."""


class OperatorError(ParsingError):
    """An operator immediately follows another operator."""

    def __init__(self, current: str, previous: str) -> None:
        super().__init__(current)
        self.previous = previous

    def __str__(self) -> str:
        return f"Cannot have {self.arg!r} right after {self.previous!r}"


class BracketError(ParsingError):
    """The brackets in an expression do not match."""


class NestingError(ParsingError):
    """An expression exceeds the maximum nesting level."""

    def __str__(self) -> str:
        return f"Maximal nesting level ({self.arg}) exceeded"


class SqrtError(ParsingError):
    """The token after 'sqrt' is not an opening bracket."""

    def __str__(self) -> str:
        return f"Opening bracket expected after sqrt, not {self.arg!r}"


class ExponentError(ParsingError):
    """A token has a missing or invalid exponent."""


class SymbolError(ParsingError):
    """A symbol is too long or contains invalid characters."""


class TokenError(ParsingError):
    """A token is too long or matches no known kind of token."""


class DefinitionError(ParsingError):
    """A rule definition is malformed."""


class RedefinitionError(ParsingError):
    """A rule definition would replace an existing rule."""

    def __str__(self) -> str:
        return f"You may not redefine {self.arg!r}"


_SPLIT = '*/()'

_TOKEN_RE = re.compile(
    r"""
        \)\^[^\s*/()]*  # a closing bracket with an attached exponent
    |
        [*/()]          # a single structural character
    |
        [^\s*/()]+      # anything else, up to whitespace or a structural char
    """,
    re.VERBOSE,
)

_NUMBER_RE = re.compile(
    r"""
        [-+]?               # an optional sign
        (?:
            \d+\.?\d*       # digits with an optional fractional part
        |
            \.\d+           # OR a bare fractional part
        )
        (?:[eE][-+]?\d+)?   # and an optional decimal exponent
    """,
    re.VERBOSE,
)

_EXPONENT_RE = re.compile(r'[-+]?\d+')

_SYMBOL_RE = re.compile(r'[a-zA-Z]+')


def tokenize(string: str, max_item_size: int=MAX_ITEM_SIZE):
    """Split `string` into parser tokens.

    Tokens end at whitespace or at one of the structural characters ``*``,
    ``/``, ``(``, and ``)``, each of which is a token in its own right. A
    closing bracket keeps an immediately following ``^exponent``.

    Examples
    --------
    >>> list(tokenize('kg*m^2/(s^4 kg)^2'))
    ['kg', '*', 'm^2', '/', '(', 's^4', 'kg', ')^2']
    """
    for match in _TOKEN_RE.finditer(string):
        token = match.group()
        if len(token) > max_item_size:
            raise TokenError(f"Item too long ({len(token)} characters)")
        yield token


def isnumber(token: str) -> bool:
    """True if `token` is a complete numeric literal."""
    return bool(_NUMBER_RE.fullmatch(token))


def split_exponent(
    token: str,
    max_symbol_size: int=MAX_SYMBOL_SIZE,
) -> typing.Tuple[str, int]:
    """Split a token into its symbol and its integral exponent.

    The exponent defaults to 1 when `token` contains no ``^``.
    """
    symbol, caret, exponent = token.partition('^')
    if len(symbol) >= max_symbol_size:
        raise SymbolError(f"Symbol too long ({len(symbol)} characters)")
    if not caret:
        return symbol, 1
    if not exponent:
        raise ExponentError(
            f"Missing exponent after '^' while parsing {token!r}"
        )
    if not _EXPONENT_RE.fullmatch(exponent):
        raise ExponentError(
            f"Invalid exponent {exponent!r} while parsing {token!r}"
        )
    return symbol, int(exponent)


class Frame:
    """One level of bracket nesting in an ongoing parse."""

    __slots__ = ('unit', 'sqrt', 'sign')

    def __init__(self, sqrt: bool=False) -> None:
        self.unit = algebraic.UnitVector()
        """The accumulated unit vector of this level."""
        self.sqrt = sqrt
        """Whether to take the square root when this level closes."""
        self.sign = 1
        """The sign of exponents for tokens in this level."""

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__qualname__}"
            f"(unit={self.unit!r}, sqrt={self.sqrt}, sign={self.sign})"
        )


class Stack:
    """A bounded stack of parser frames.

    The bottom frame always exists and holds the result of the parse.
    """

    def __init__(self, size: int=STACK_SIZE) -> None:
        self.size = size
        """The maximum number of frames."""
        self._frames = [Frame()]

    @property
    def top(self) -> Frame:
        """The current frame."""
        return self._frames[-1]

    @property
    def depth(self) -> int:
        """The number of open brackets."""
        return len(self._frames) - 1

    def push(self, sqrt: bool=False) -> Frame:
        """Open a new frame."""
        if len(self._frames) >= self.size:
            raise NestingError(self.size - 1)
        frame = Frame(sqrt=sqrt)
        self._frames.append(frame)
        logger.debug("Push: %d -> %d", self.depth - 1, self.depth)
        return frame

    def pop(self) -> Frame:
        """Close the current frame."""
        if self.depth == 0:
            raise BracketError("Bracket mismatch: unexpected ')'")
        frame = self._frames.pop()
        logger.debug("Pop: %d -> %d", self.depth + 1, self.depth)
        return frame


class State(enum.Enum):
    """The states of the parser with respect to token order."""

    NORMAL = 'normal'
    AFTER_OPERATOR = 'after-operator'
    EXPECT_BRACKET = 'expect-bracket'


class Kind(enum.Enum):
    """The kinds of token that matter for token order."""

    OPERATOR = 'operator'
    OPENING = 'opening'
    CLOSING = 'closing'
    SQRT = 'sqrt'
    ITEM = 'item'


_TRANSITIONS = {
    State.NORMAL: {
        Kind.OPERATOR: State.AFTER_OPERATOR,
        Kind.OPENING: State.NORMAL,
        Kind.CLOSING: State.NORMAL,
        Kind.SQRT: State.EXPECT_BRACKET,
        Kind.ITEM: State.NORMAL,
    },
    State.AFTER_OPERATOR: {
        Kind.OPENING: State.NORMAL,
        Kind.CLOSING: State.NORMAL,
        Kind.SQRT: State.EXPECT_BRACKET,
        Kind.ITEM: State.NORMAL,
    },
    State.EXPECT_BRACKET: {
        Kind.OPENING: State.NORMAL,
    },
}
"""Allowed state transitions, by current state and kind of token."""


def classify(token: str) -> Kind:
    """Determine the kind of `token`."""
    if token in {'*', '/'}:
        return Kind.OPERATOR
    if token == '(':
        return Kind.OPENING
    if token.startswith(')'):
        return Kind.CLOSING
    if token == 'sqrt':
        return Kind.SQRT
    return Kind.ITEM


def transition(state: State, token: str, previous: str=None) -> State:
    """Compute the state that follows `token`.

    Parameters
    ----------
    state : `~symbolic.State`
        The current state.

    token : string
        The next token.

    previous : string, optional
        The previous token, for error messages.

    Raises
    ------
    `~symbolic.OperatorError`
        If an operator follows an operator.

    `~symbolic.SqrtError`
        If anything but an opening bracket follows 'sqrt'.
    """
    allowed = _TRANSITIONS[state]
    kind = classify(token)
    if kind in allowed:
        return allowed[kind]
    if state == State.EXPECT_BRACKET:
        raise SqrtError(token)
    raise OperatorError(token, previous)


class Parser:
    """A tool for parsing unit expressions into unit vectors.

    An expression is a sequence of whitespace-separated numbers and (possibly
    prefixed) unit symbols with optional integral exponents (e.g., 'm^2'),
    combined by '*' and '/' and grouped by brackets. A closing bracket may
    carry an exponent (e.g., '(m s)^2'), and 'sqrt' before an opening bracket
    takes the square root of the group. A 'sqrt' at the end of the string has
    no effect, as does an operator. Adjacent items multiply. A '/' negates the
    sign of every later item on the same level.
    """

    def __init__(
        self,
        rules: tables.RuleTable,
        prefixes: tables.PrefixTable,
        stack_size: int=STACK_SIZE,
        max_symbol_size: int=MAX_SYMBOL_SIZE,
        max_item_size: int=MAX_ITEM_SIZE,
    ) -> None:
        """
        Initialize a parser with symbol tables and limits.

        Parameters
        ----------
        rules : `~tables.RuleTable`
            The rules to use when resolving unit symbols.

        prefixes : `~tables.PrefixTable`
            The prefixes to use when resolving unit symbols.

        stack_size : int, default=16
            The maximum number of stack frames. The maximum nesting level is
            one less than this value.

        max_symbol_size : int, default=128
            The length at which a symbol becomes too long.

        max_item_size : int, default=1024
            The maximum length of a single token.
        """
        self.rules = rules
        self.prefixes = prefixes
        self.stack_size = stack_size
        self.max_symbol_size = max_symbol_size
        self.max_item_size = max_item_size

    def parse(self, string: str) -> algebraic.UnitVector:
        """Convert `string` into a unit vector.

        The empty string produces the identity vector.
        """
        if not isinstance(string, str):
            raise ParsingTypeError(f"Can't parse {type(string)}") from None
        logger.debug("Parse unit: %r", string)
        stack = Stack(self.stack_size)
        state = State.NORMAL
        previous = None
        pending = False
        for token in tokenize(string, self.max_item_size):
            logger.debug("Item is %r", token)
            state = transition(state, token, previous)
            kind = classify(token)
            if kind == Kind.OPERATOR:
                if token == '/':
                    stack.top.sign *= -1
            elif kind == Kind.OPENING:
                stack.push(sqrt=pending)
                pending = False
            elif kind == Kind.CLOSING:
                self._close(stack, token)
            elif kind == Kind.SQRT:
                logger.debug("Found sqrt")
                pending = True
            else:
                self._handle_item(stack.top, token)
            previous = token
        if stack.depth != 0:
            raise BracketError(
                f"Bracket mismatch: {stack.depth} unclosed '(' in {string!r}"
            )
        return stack.top.unit.copy()

    def _close(self, stack: Stack, token: str) -> None:
        """Fold the current frame into its parent."""
        _, exponent = split_exponent(token, self.max_symbol_size)
        frame = stack.pop()
        if frame.sqrt:
            algebraic.sqrt(frame.unit)
        parent = stack.top
        algebraic.combine(parent.unit, frame.unit, exponent * parent.sign)

    def _handle_item(self, frame: Frame, token: str) -> None:
        """Fold a number or a unit symbol into `frame`."""
        if isnumber(token):
            logger.debug("%r is a factor", token)
            value = float(token)
            algebraic.scale(frame.unit, algebraic.power(value, frame.sign))
            return
        symbol, exponent = split_exponent(token, self.max_symbol_size)
        exponent *= frame.sign
        if not symbol:
            raise TokenError(f"Unknown item type for item {token!r}")
        unit, multiplier = tables.resolve(symbol, self.rules, self.prefixes)
        algebraic.combine(frame.unit, unit, exponent)
        algebraic.scale(frame.unit, algebraic.power(multiplier, exponent))


class Definition(typing.NamedTuple):
    """The parts of a rule definition."""

    symbol: str
    expression: str
    protected: bool


def split_definition(
    string: str,
    max_symbol_size: int=MAX_SYMBOL_SIZE,
) -> Definition:
    """Split a string like 'symbol = expression' into its parts.

    A leading '!' on the symbol requests a protected rule.
    """
    if not isinstance(string, str):
        raise ParsingTypeError(
            f"Can't parse rule from {type(string)}"
        ) from None
    logger.debug("Parsing rule %r", string)
    lhs, equals, rhs = string.partition('=')
    if not equals:
        raise DefinitionError(f"Missing '=' in rule definition {string!r}")
    if not lhs:
        raise DefinitionError("Empty symbols are not allowed")
    parts = lhs.split()
    if len(parts) > 1:
        raise SymbolError("Invalid symbol, whitespaces are not allowed")
    if not parts:
        raise DefinitionError("Empty symbols are not allowed")
    symbol = parts[0]
    if len(symbol) > max_symbol_size:
        raise SymbolError(f"Symbol too long ({len(symbol)} characters)")
    protected = symbol.startswith('!')
    if protected:
        logger.debug("Forced rule")
        symbol = symbol[1:]
    if not _SYMBOL_RE.fullmatch(symbol):
        raise SymbolError(f"Symbol {symbol!r} is invalid")
    return Definition(symbol, rhs, protected)


class RuleParser:
    """A tool for installing rules from definitions like 'N = kg m s^-2'."""

    def __init__(self, parser: Parser) -> None:
        self.parser = parser

    @property
    def rules(self) -> tables.RuleTable:
        """The rule table that this instance updates."""
        return self.parser.rules

    def define(self, string: str) -> tables.Rule:
        """Parse a rule definition and install the new rule.

        An existing rule may only be replaced when it is not protected and the
        new definition is protected ('!symbol = ...'). The old rule is removed
        before parsing the new expression, so a rule can't refer to itself.
        If anything fails, the table is left unchanged.

        Returns
        -------
        `~tables.Rule`
            The newly installed rule.
        """
        definition = split_definition(string, self.parser.max_symbol_size)
        symbol = definition.symbol
        with self.rules.transaction():
            if existing := self.rules.lookup(symbol):
                if existing.protected or not definition.protected:
                    raise RedefinitionError(symbol)
                self.rules.remove(symbol)
            logger.debug("Rest definition is %r", definition.expression)
            unit = self.parser.parse(definition.expression)
            return self.rules.install(symbol, unit, definition.protected)
