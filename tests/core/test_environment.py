import threading

import pytest

from unitlib.core import algebraic
from unitlib.core import environment
from unitlib.core import iotools
from unitlib.core import metric
from unitlib.core import symbolic
from unitlib.core import tables


# Errors that a caller may see from invalid expressions and definitions.
INVALID = (
    symbolic.ParsingError,
    tables.TableError,
    algebraic.VectorValueError,
)


def test_base_symbols(env: environment.Environment):
    """Parsing a base symbol yields exponent 1 in its own slot."""
    for i, symbol in enumerate(metric.SYMBOLS):
        result = env.parse(symbol)
        assert result[i] == 1
        assert sum(abs(e) for _, e in result) == 1
        assert result.factor == 1.0


def test_invalid_expressions(env: environment.Environment):
    """Invalid expressions fail and leave a record."""
    strings = [
        "5 ** kg^2",
        "5! * kg^2",
        "5 * kg^2!",
        "sqrt kg^2)",
        "( kg^2 m",
        "((((((((((((((((((((((((((((((((((((((((((((((((",
    ]
    for string in strings:
        env.last_error = None
        with pytest.raises(INVALID) as exc:
            env.parse(string)
        assert env.last_error is not None, string
        assert env.last_error.error is exc.value
        assert env.last_error.message == str(exc.value)
        assert env.last_error.function
        assert env.last_error.line > 0


def test_invalid_rules(env: environment.Environment):
    """Invalid rule definitions fail without changing the rules."""
    strings = [
        "",
        " =",
        "16 = 16",
        " a b = s ",
        " c == kg",
        "d = e",
        " = kg",
    ]
    before = list(env.rules)
    for string in strings:
        with pytest.raises(INVALID):
            env.define(string)
    assert list(env.rules) == before


def test_missing_arguments(env: environment.Environment):
    """Absent arguments are usage errors."""
    with pytest.raises(symbolic.ParsingTypeError):
        env.parse(None)
    assert isinstance(env.last_error.error, symbolic.ParsingTypeError)
    with pytest.raises(symbolic.ParsingTypeError):
        env.define(None)
    with pytest.raises(algebraic.VectorTypeError):
        env.render(None)


def test_last_error(env: environment.Environment):
    """The most recent failure replaces earlier ones."""
    assert env.last_error is None
    with pytest.raises(symbolic.BracketError):
        env.parse('(m')
    first = env.last_error
    assert isinstance(first, environment.Failure)
    assert env.parse('m') == algebraic.UnitVector({'m': 1})
    assert env.last_error is first
    with pytest.raises(symbolic.OperatorError):
        env.parse('m * / s')
    assert env.last_error is not first
    assert env.last_error.message == "Cannot have '/' right after '*'"
    assert env.last_error.function == 'transition'


def test_protection(env: environment.Environment):
    """Protected rules can't be redefined or removed."""
    env.define('!ForcedRule = kg')
    with pytest.raises(symbolic.RedefinitionError):
        env.define('!ForcedRule = m')
    env.define('NewRule = kg')
    env.define('!NewRule = s')
    assert env.parse('NewRule') == env.parse('s')
    with pytest.raises(symbolic.RedefinitionError):
        env.define('!NewRule = m')
    with pytest.raises(symbolic.RedefinitionError):
        env.define('!kg = kg')
    env.define(' Recurse = m')
    with pytest.raises(tables.UnknownSymbolError):
        env.define('!Recurse = Recurse')
    assert env.parse('Recurse') == env.parse('m')
    with pytest.raises(tables.ProtectedRuleError):
        env.remove('ForcedRule')
    assert env.remove('Recurse').symbol == 'Recurse'
    assert 'Recurse' not in env


def test_empty_rule(env: environment.Environment):
    """A rule may define a dimensionless unit."""
    env.define('EmptySymbol = ')
    assert env.parse('EmptySymbol').isidentity()


def test_division(env: environment.Environment):
    """Division negates the exponents of later items."""
    correct = algebraic.UnitVector({'kg': 1, 's': -1})
    assert env.parse('kg / s') == correct
    correct.factor = 2.0
    assert env.parse('8 kg / 4 s') == correct


def test_round_trip(env: environment.Environment):
    """Parsing the plain rendering of a vector reproduces it."""
    strings = [
        'm',
        'kg m / s^2',
        '8 kg / 4 s',
        '-1.5 kg',
        '0 kg',
        '1 / 3 m',
        'sqrt(kg^2/m^2) kg',
        '(m s)^2',
        'kg*m^2/(s^4 kg) sqrt(A^2 K^4)',
        '5 Ym',
        '7 ug / ns^3',
        '',
    ]
    for string in strings:
        vector = env.parse(string)
        again = env.parse(env.render(vector))
        assert again == vector, string
        assert again.factor == pytest.approx(vector.factor), string


def test_negative_sqrt(env: environment.Environment):
    """The square root of a negative factor is an error."""
    with pytest.raises(algebraic.NegativeFactorError):
        env.parse('sqrt(-4 kg^2)')
    assert env.parse('sqrt(4 kg^2)') == algebraic.UnitVector({'kg': 1}, 2.0)


def test_reduce(env: environment.Environment):
    """Render a vector in terms of a matching rule."""
    env.define('N = 1 kg m s^-2')
    vector = env.parse('kg m s^-2')
    assert env.reduce(vector).symbol == 'N'
    assert env.render(vector, 'plain', reduce=True) == '1 N'
    assert env.render(vector, 'latex-inline', reduce=True) == '$1 \\text{ N}$'
    assert env.render(vector, 'latex-frac', reduce=True) == '$1 \\text{ N}$'
    assert env.measure(vector, reduce=True) == 3
    assert env.render(vector) == '1 m kg s^-2'
    assert env.reduce(env.parse('m^3 / s')) is None


def test_render_errors(env: environment.Environment):
    """Unknown styles fail and leave a record."""
    with pytest.raises(ValueError):
        env.render(env.parse('m'), style='html')
    assert env.last_error.function == 'standard_style'


def test_reset(env: environment.Environment):
    """Reset discards dynamic rules but keeps grams."""
    env.define('N = kg m s^-2')
    env.reset()
    assert 'N' not in env
    assert env.parse('mg') == algebraic.UnitVector({'kg': 1}, 1e-6)
    assert list(env.rules) == [*metric.SYMBOLS, 'g']


def test_close():
    """A closed environment refuses further work."""
    env = environment.Environment()
    assert not env.closed
    env.close()
    assert env.closed
    assert len(env.rules) == metric.NUM_BASE_UNITS
    assert len(env.prefixes) == 0
    with pytest.raises(environment.EnvironmentClosedError):
        env.parse('m')
    assert isinstance(env.last_error.error, environment.EnvironmentClosedError)
    env.close()
    assert 'closed' in repr(env)


def test_context_manager():
    """Leaving a context closes the environment."""
    with environment.Environment() as env:
        assert env.parse('km') == algebraic.UnitVector({'m': 1}, 1e3)
    assert env.closed


def test_independent_environments():
    """Rules defined in one environment don't leak into another."""
    with environment.Environment() as a, environment.Environment() as b:
        a.define('N = kg m s^-2')
        assert 'N' in a
        assert 'N' not in b
        with pytest.raises(tables.UnknownSymbolError):
            b.parse('N')


def test_limits(tmp_path):
    """Parser limits come from settings or keyword arguments."""
    path = tmp_path / 'unitlib.ini'
    path.write_text('[parser]\nstack_size = 3\n')
    settings = iotools.Settings('parser', path=path)
    with environment.Environment(settings=settings) as env:
        env.parse('((m))')
        with pytest.raises(symbolic.NestingError):
            env.parse('(((m)))')
    with environment.Environment(settings=settings, stack_size=5) as env:
        env.parse('((((m))))')
    with environment.Environment(max_symbol_size=3) as env:
        with pytest.raises(symbolic.SymbolError):
            env.parse('mol')
    with pytest.raises(TypeError):
        environment.Environment(depth=3)


def test_load(env: environment.Environment, rulefile):
    """Define rules from a file."""
    path = rulefile(
        '# Some derived units',
        '',
        'N = kg m s^-2',
        '   # indented comment',
        '!J = N m',
    )
    assert env.load(path) == 2
    assert env.parse('J') == algebraic.UnitVector({'m': 2, 'kg': 1, 's': -2})
    assert env.rules['J'].protected


def test_load_failure(env: environment.Environment, rulefile):
    """Loading stops at the first bad line."""
    path = rulefile(
        'N = kg m s^-2',
        'J = N m',
        'W = J / furlong',
        'Hz = s^-1',
    )
    with pytest.raises(iotools.RuleFileError) as exc:
        env.load(path)
    assert exc.value.number == 3
    assert isinstance(exc.value.__cause__, tables.UnknownSymbolError)
    assert 'line 3' in str(exc.value)
    assert env.last_error.error is exc.value
    assert 'N' in env
    assert 'J' in env
    assert 'W' not in env
    assert 'Hz' not in env
    with pytest.raises(iotools.NonExistentPathError):
        env.load(path.parent / 'missing.txt')


def test_load_defaults():
    """The package ships rules for common derived units."""
    with environment.Environment(rules='default') as env:
        assert env.parse('N') == env.parse('kg m s^-2')
        assert env.parse('kPa') == env.parse('1e3 N / m^2')
        assert env.parse('L') == env.parse('1e-3 m^3')
        assert env.parse('eV').factor == pytest.approx(1.602176634e-19)
        assert env.render(env.parse('kg m^2 s^-3'), reduce=True) == '1 W'
        assert all(rule.protected for rule in env.rules.dynamic)


def test_concurrent_definitions():
    """Rule definitions from several threads are all installed."""
    symbols = [f'Unit{chr(ord("A") + i)}' for i in range(16)]
    with environment.Environment() as env:
        def define(symbol):
            env.define(f'{symbol} = kg m')
        threads = [
            threading.Thread(target=define, args=(symbol,))
            for symbol in symbols
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert all(symbol in env for symbol in symbols)


def test_show(capsys):
    """Print a unit expression from the command-line helper."""
    result = environment.show('kg m / s^2', style='latex-frac')
    expected = '$\\frac{1 \\text{ m} \\text{ kg}}{\\text{s}^{2}}$'
    assert result == expected
    assert capsys.readouterr().out.strip() == expected
    assert environment.show('kg m / s^2', reduce=True, defaults=True) == '1 N'


def test_internal_errors_not_recorded(
    env: environment.Environment,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Only failures caused by the caller's input leave a record."""
    def broken(string):
        raise TypeError("unsupported operand")
    monkeypatch.setattr(env._parser, 'parse', broken)
    with pytest.raises(TypeError):
        env.parse('m')
    assert env.last_error is None


def test_out_of_range(env: environment.Environment):
    """Factors that overflow are errors in every operation."""
    for string in ('1e200 1e200 m', 'sqrt(1e200 1e200 0 m^2)', 'km^200'):
        env.last_error = None
        with pytest.raises(algebraic.VectorValueError):
            env.parse(string)
        assert isinstance(env.last_error.error, algebraic.VectorValueError)
    vector = env.parse('1e200 m')
    assert env.parse(env.render(vector)) == vector
    assert env.render(vector, style='latex-inline') == (
        '$10^{200} \\text{ m}$'
    )
    vector.factor = float('inf')
    env.last_error = None
    with pytest.raises(algebraic.VectorValueError):
        env.render(vector, style='latex-inline')
    assert env.last_error.function == 'finite'


def test_returned_rules_are_copies(env: environment.Environment):
    """Changing a returned rule doesn't change the table."""
    defined = env.define('N = kg m s^-2')
    defined.unit.factor = 5.0
    vector = env.parse('kg m s^-2')
    reduced = env.reduce(vector)
    assert reduced.symbol == 'N'
    assert reduced.unit.factor == 1.0
    reduced.unit.factor = 5.0
    reduced.unit['kg'] = 3
    found = env.lookup('N')
    assert found.unit == algebraic.UnitVector({'m': 1, 'kg': 1, 's': -2})
    found.unit.factor = 5.0
    assert env.render(vector, reduce=True) == '1 N'
    assert env.lookup('nothing') is None
