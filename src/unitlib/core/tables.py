import collections.abc
import contextlib
import logging
import typing

from unitlib.core import algebraic
from unitlib.core import metric


logger = logging.getLogger(__name__)


class TableError(Exception):
    """An error occurred while reading or updating a symbol table."""

    def __init__(self, symbol: str) -> None:
        self.symbol = symbol


class ProtectedRuleError(TableError):
    """Attempted to remove or replace a protected rule."""

    def __str__(self) -> str:
        return f"Can't remove the protected rule {self.symbol!r}"


class RuleNotFoundError(TableError, KeyError):
    """There is no rule with the requested symbol."""

    def __str__(self) -> str:
        return f"No rule for {self.symbol!r}"


class UnknownSymbolError(TableError, KeyError):
    """A symbol matches neither a rule nor a prefixed rule."""

    def __init__(self, symbol: str, prefix: str=None) -> None:
        super().__init__(symbol)
        self.prefix = prefix

    def __str__(self) -> str:
        if self.prefix is None:
            return f"Unknown symbol: {self.symbol!r}"
        return f"Unknown symbol: {self.symbol!r} with prefix {self.prefix!r}"


class Rule(typing.NamedTuple):
    """A named unit vector."""

    symbol: str
    unit: algebraic.UnitVector
    protected: bool=False

    def copy(self) -> 'Rule':
        """Create a copy of this rule with an independent unit vector."""
        return self._replace(unit=self.unit.copy())


def _base_rules() -> typing.Dict[str, Rule]:
    """Create one protected rule per base unit."""
    rules = {}
    for i, symbol in enumerate(metric.SYMBOLS):
        unit = algebraic.UnitVector()
        unit[i] = 1
        rules[symbol] = Rule(symbol, unit, protected=True)
    return rules


def _gram_rule() -> Rule:
    """Create the protected rule that defines grams in terms of kilograms."""
    unit = algebraic.UnitVector({metric.GRAM['base']: 1}, metric.GRAM['factor'])
    return Rule(metric.GRAM['symbol'], unit, protected=True)


class RuleTable(collections.abc.Mapping):
    """An ordered collection of rules, keyed by symbol.

    The table always starts with one rule per base unit, followed by the rule
    for grams. Other rules follow in the order of installation. Base rules are
    never removed; `reset` discards every other rule and reinstalls the rule
    for grams.
    """

    def __init__(self) -> None:
        self._base = _base_rules()
        self._rules = dict(self._base)
        self._install(_gram_rule())

    def __len__(self) -> int:
        """The number of rules in this table."""
        return len(self._rules)

    def __iter__(self) -> typing.Iterator[str]:
        """Iterate over rule symbols in table order."""
        return iter(self._rules)

    def __getitem__(self, symbol: str) -> Rule:
        """Look up a rule by its exact symbol."""
        if symbol in self._rules:
            return self._rules[symbol]
        raise RuleNotFoundError(symbol)

    @property
    def dynamic(self) -> typing.List[Rule]:
        """The rules that are not base rules, in table order."""
        return [
            rule for symbol, rule in self._rules.items()
            if symbol not in self._base
        ]

    def lookup(self, symbol: str) -> typing.Optional[Rule]:
        """The rule for `symbol`, if any."""
        return self._rules.get(symbol)

    def install(
        self,
        symbol: str,
        unit: algebraic.UnitVector,
        protected: bool=False,
    ) -> Rule:
        """Append a new rule to this table.

        The caller is responsible for making sure that `symbol` is not in use.
        """
        return self._install(Rule(symbol, algebraic.copy(unit), protected))

    def _install(self, rule: Rule) -> Rule:
        """Internal helper for appending rules."""
        self._rules[rule.symbol] = rule
        logger.debug("Installed rule %r = %r", rule.symbol, rule.unit)
        return rule

    def remove(self, symbol: str) -> Rule:
        """Remove an unprotected rule from this table.

        Returns
        -------
        `~tables.Rule`
            The rule that was removed.
        """
        if symbol in self._base:
            raise ProtectedRuleError(symbol)
        rule = self[symbol]
        if rule.protected:
            raise ProtectedRuleError(symbol)
        del self._rules[symbol]
        logger.debug("Removed rule %r", symbol)
        return rule

    def reset(self) -> None:
        """Discard all dynamic rules and reinstall the rule for grams."""
        self._rules = dict(self._base)
        self._install(_gram_rule())

    def clear(self) -> None:
        """Discard all dynamic rules, including the rule for grams."""
        self._rules = dict(self._base)

    @contextlib.contextmanager
    def transaction(self):
        """Restore the current contents if the managed block fails."""
        saved = dict(self._rules)
        try:
            yield self
        except BaseException:
            self._rules = saved
            raise

    def reduce(
        self,
        vector: algebraic.UnitVector,
    ) -> typing.Optional[Rule]:
        """The first rule with the same unit as `vector`, if any.

        Rules with a zero factor never match.
        """
        for rule in self._rules.values():
            if rule.unit.factor == 0:
                continue
            comparison = algebraic.compare(rule.unit, vector)
            if comparison & algebraic.Comparison.SAME_UNIT:
                return rule

    def __str__(self) -> str:
        """A simplified representation of this object."""
        return ', '.join(self._rules)

    def __repr__(self) -> str:
        """An unambiguous representation of this object."""
        return f"{self.__class__.__qualname__}({self})"


class PrefixTable(collections.abc.Mapping):
    """The SI prefixes, keyed by their single-character symbol."""

    def __init__(
        self,
        prefixes: typing.Iterable[metric.Prefix]=metric.PREFIXES,
    ) -> None:
        self._prefixes = {prefix.symbol: prefix for prefix in prefixes}

    def __len__(self) -> int:
        """The number of known prefixes."""
        return len(self._prefixes)

    def __iter__(self) -> typing.Iterator[str]:
        """Iterate over prefix symbols."""
        return iter(self._prefixes)

    def __getitem__(self, symbol: str) -> metric.Prefix:
        """Look up a prefix by its character."""
        return self._prefixes[symbol]

    def lookup(self, symbol: str) -> typing.Optional[metric.Prefix]:
        """The prefix for `symbol`, if any."""
        return self._prefixes.get(symbol)

    def clear(self) -> None:
        """Discard all prefixes."""
        self._prefixes = {}

    def __str__(self) -> str:
        """A simplified representation of this object."""
        return ''.join(self._prefixes)

    def __repr__(self) -> str:
        """An unambiguous representation of this object."""
        return f"{self.__class__.__qualname__}({self})"


def resolve(
    symbol: str,
    rules: RuleTable,
    prefixes: PrefixTable,
) -> typing.Tuple[algebraic.UnitVector, float]:
    """Find the unit vector and prefix multiplier of a symbol.

    An exact match with a rule always wins. Otherwise, this function treats
    the first character as a prefix and the remaining characters as the
    symbol of a rule.

    Returns
    -------
    tuple
        The rule's unit vector and the prefix multiplier (1.0 for an exact
        match).
    """
    if rule := rules.lookup(symbol):
        return rule.unit, 1.0
    head, tail = symbol[:1], symbol[1:]
    logger.debug("Got prefix: %r", head)
    prefix = prefixes.lookup(head) if head else None
    if prefix is None:
        raise UnknownSymbolError(symbol)
    if rule := rules.lookup(tail):
        return rule.unit, prefix.factor
    raise UnknownSymbolError(tail, prefix=head)
