import argparse
import functools
import logging
import threading
import traceback
import typing

from unitlib.core import algebraic
from unitlib.core import formatting
from unitlib.core import iotools
from unitlib.core import symbolic
from unitlib.core import tables


logger = logging.getLogger(__name__)


class EnvironmentClosedError(RuntimeError):
    """The unit environment has already been closed."""

    def __str__(self) -> str:
        return "Can't use a closed unit environment"


class Failure(typing.NamedTuple):
    """A record of the most recent error in a unit environment."""

    message: str
    function: str
    line: int
    error: Exception


_FAILURES = (
    algebraic.VectorTypeError,
    algebraic.VectorValueError,
    tables.TableError,
    symbolic.ParsingError,
    formatting.StyleError,
    iotools.NonExistentPathError,
    iotools.RuleFileError,
    EnvironmentClosedError,
    symbolic.ParsingTypeError,
)


def _record(method: typing.Callable):
    """Decorate a public method so that it records failures."""
    @functools.wraps(method)
    def wrapper(self: 'Environment', *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except _FAILURES as err:
            self._set_failure(err)
            raise
    return wrapper


class Environment:
    """A collection of unit rules and prefixes, with tools that use them.

    Each instance owns an independent rule table and prefix table. The rule
    table starts with one rule per base unit and the rule for grams; `define`
    and `load` add rules, and `reset` discards them again. All operations on
    the tables hold a re-entrant lock, so a rule definition is atomic with
    respect to other threads. Rules returned by the public methods are copies,
    so changing one does not change the table.

    Parameters
    ----------
    rules : path-like, optional
        A rule file to load after initialization. The special value 'default'
        loads the SI derived units that ship with this package.

    settings : `~iotools.Settings`, optional
        The source of default parser limits. The default is the '[parser]'
        section of the first 'unitlib.ini' found.

    **limits
        Override individual limits (`stack_size`, `max_symbol_size`, or
        `max_item_size`).

    Examples
    --------
    >>> env = Environment()
    >>> rule = env.define('N = kg m s^-2')
    >>> env.render(env.parse('kg * m / s^2'), reduce=True)
    '1 N'
    """

    def __init__(
        self,
        rules: iotools.PathLike=None,
        settings: iotools.Settings=None,
        **limits,
    ) -> None:
        if settings is None:
            settings = iotools.Settings('parser')
        defaults = {
            'stack_size': symbolic.STACK_SIZE,
            'max_symbol_size': symbolic.MAX_SYMBOL_SIZE,
            'max_item_size': symbolic.MAX_ITEM_SIZE,
        }
        unknown = set(limits) - set(defaults)
        if unknown:
            raise TypeError(f"Unknown limit(s): {', '.join(sorted(unknown))}")
        options = {
            key: limits.get(key, settings.getint(key, value))
            for key, value in defaults.items()
        }
        self._lock = threading.RLock()
        self._closed = False
        self.last_error: typing.Optional[Failure] = None
        """The most recent failure, if any."""
        self.rules = tables.RuleTable()
        """The rules that define unit symbols."""
        self.prefixes = tables.PrefixTable()
        """The SI prefixes that may precede unit symbols."""
        self._parser = symbolic.Parser(self.rules, self.prefixes, **options)
        self._rule_parser = symbolic.RuleParser(self._parser)
        logger.debug("Initialized environment with %s", options)
        if rules == 'default':
            self.load_defaults()
        elif rules is not None:
            self.load(rules)

    def _set_failure(self, err: Exception) -> None:
        """Record `err` as the most recent failure."""
        frames = traceback.extract_tb(err.__traceback__)
        origin = frames[-1] if frames else None
        self.last_error = Failure(
            message=str(err),
            function=origin.name if origin else '',
            line=origin.lineno if origin else 0,
            error=err,
        )
        logger.debug("Failure in %s: %s", self.last_error.function, err)

    def _check(self) -> None:
        """Raise an exception if this environment is closed."""
        if self._closed:
            raise EnvironmentClosedError

    @property
    def closed(self) -> bool:
        """True if this environment has been closed."""
        return self._closed

    @_record
    def parse(self, string: str) -> algebraic.UnitVector:
        """Convert a unit expression into a unit vector.

        See `~symbolic.Parser` for the syntax of unit expressions.
        """
        with self._lock:
            self._check()
            return self._parser.parse(string)

    @_record
    def define(self, string: str) -> tables.Rule:
        """Add a rule from a definition like 'symbol = expression'.

        A leading '!' on the symbol protects the new rule. Only a protected
        definition may replace an existing rule, and only when that rule is
        not protected itself.
        """
        with self._lock:
            self._check()
            return self._rule_parser.define(string).copy()

    @_record
    def lookup(self, symbol: str) -> typing.Optional[tables.Rule]:
        """A copy of the rule for `symbol`, if any."""
        with self._lock:
            self._check()
            if rule := self.rules.lookup(symbol):
                return rule.copy()

    @_record
    def remove(self, symbol: str) -> tables.Rule:
        """Remove the unprotected rule for `symbol`."""
        with self._lock:
            self._check()
            return self.rules.remove(symbol)

    @_record
    def load(self, path: iotools.PathLike) -> int:
        """Define rules from each line of a file.

        This method stops at the first line that fails. Rules from earlier
        lines remain defined.

        Returns
        -------
        int
            The number of rules defined.
        """
        with self._lock:
            self._check()
            logger.debug("Loading rules from %s", path)
            count = 0
            for number, line in iotools.read_rules(path):
                try:
                    self._rule_parser.define(line)
                except (
                    algebraic.VectorValueError,
                    tables.TableError,
                    symbolic.ParsingError,
                ) as err:
                    raise iotools.RuleFileError(path, number, line) from err
                count += 1
            return count

    def load_defaults(self) -> int:
        """Define the SI derived units that ship with this package."""
        return self.load(iotools.DEFAULT_RULES)

    @_record
    def reset(self) -> None:
        """Discard all rules except the base rules and the rule for grams."""
        with self._lock:
            self._check()
            self.rules.reset()

    def close(self) -> None:
        """Release all rules and prefixes.

        Closing an environment twice has no further effect.
        """
        with self._lock:
            self.rules.clear()
            self.prefixes.clear()
            self._closed = True

    def __enter__(self) -> 'Environment':
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @_record
    def reduce(
        self,
        vector: algebraic.UnitVector,
    ) -> typing.Optional[tables.Rule]:
        """The first rule with the same unit as `vector`, if any."""
        with self._lock:
            self._check()
            if rule := self.rules.reduce(vector):
                return rule.copy()

    @_record
    def render(
        self,
        vector: algebraic.UnitVector,
        style: str='plain',
        reduce: bool=False,
    ) -> str:
        """Convert a unit vector into a string.

        See `~formatting.render` for the available styles.
        """
        with self._lock:
            self._check()
            return formatting.render(
                vector,
                style=style,
                rules=self.rules,
                reduce=reduce,
            )

    @_record
    def measure(
        self,
        vector: algebraic.UnitVector,
        style: str='plain',
        reduce: bool=False,
    ) -> int:
        """The length of the string that `render` would produce."""
        with self._lock:
            self._check()
            return formatting.measure(
                vector,
                style=style,
                rules=self.rules,
                reduce=reduce,
            )

    def __contains__(self, symbol: str) -> bool:
        """True if `symbol` is the symbol of a rule."""
        with self._lock:
            return symbol in self.rules

    def __repr__(self) -> str:
        status = 'closed' if self._closed else f"{len(self.rules)} rules"
        return f"{self.__class__.__qualname__}({status})"


def show(
    expression: str,
    style: str='plain',
    reduce: bool=False,
    rules: iotools.PathLike=None,
    defaults: bool=False,
) -> str:
    """Print the unit vector of a unit expression."""
    with Environment(rules='default' if defaults else None) as env:
        if rules is not None:
            env.load(rules)
        vector = env.parse(expression)
        string = env.render(vector, style=style, reduce=reduce)
    print(string)
    return string


if __name__ == '__main__':
    parser = argparse.ArgumentParser(
        description=show.__doc__,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        'expression',
        help="The unit expression to parse (e.g., 'kg m / s^2').",
    )
    parser.add_argument(
        '--style',
        help="The output style.",
        choices=formatting.STYLES,
        default='plain',
    )
    parser.add_argument(
        '--reduce',
        help="Write the result as a multiple of a matching rule, if any.",
        action='store_true',
    )
    parser.add_argument(
        '--rules',
        help="A file of additional rule definitions.",
    )
    parser.add_argument(
        '--defaults',
        help=Environment.load_defaults.__doc__,
        action='store_true',
    )
    parser.add_argument(
        '--debug',
        help="Print trace output to standard error.",
        action='store_true',
    )
    args = vars(parser.parse_args())
    iotools.configure_logging(debug=args.pop('debug') or None)
    show(**args)
