import collections.abc
import configparser
import json
import logging
import os
import pathlib
import typing


PathLike = typing.Union[str, os.PathLike]


PACKAGE_PATH = pathlib.Path(__file__).expanduser().resolve().parent.parent
"""The top-level directory of the installed package."""


DEFAULT_RULES = PACKAGE_PATH / 'rules.txt'
"""The rule file that defines common SI derived units."""


class NonExistentPathError(Exception):
    """The requested path does not exist."""

    def __init__(self, path: typing.Optional[PathLike]=None) -> None:
        self.path = path

    def __str__(self) -> str:
        return f"The path {self.path} does not exist."


class RuleFileError(Exception):
    """A line of a rule file failed to define a rule."""

    def __init__(self, path: PathLike, number: int, line: str) -> None:
        self.path = path
        self.number = number
        self.line = line

    def __str__(self) -> str:
        reason = f": {self.__cause__}" if self.__cause__ else ""
        return (
            f"Failed to parse line {self.number} of {self.path}"
            f" ({self.line.strip()!r}){reason}"
        )


def full_path(path: PathLike) -> pathlib.Path:
    """Expand and resolve `path`, and make sure it exists."""
    result = pathlib.Path(path).expanduser().resolve()
    if not result.exists():
        raise NonExistentPathError(result)
    return result


def search(
    paths: typing.Iterable[typing.Optional[PathLike]],
    file: PathLike,
) -> typing.Optional[pathlib.Path]:
    """Search `paths` for `file`.

    Parameters
    ----------
    paths : iterable of path-like
        The directories to search, in the order given. This function will skip
        members that are `None` or that do not exist.

    file : path-like
        The file to locate.

    Returns
    -------
    path or `None`
        The full path to the file, if found.
    """
    for p in paths:
        if p is None:
            continue
        path = pathlib.Path(p).expanduser()
        if path.is_dir():
            test = path / str(file)
            if test.exists():
                return test.resolve()


def config_paths() -> typing.List[typing.Optional[PathLike]]:
    """The directories to search for a settings file, in order."""
    home = pathlib.Path('~').expanduser()
    return [
        pathlib.Path.cwd(), # The current working directory
        home, # The user's home directory
        home / '.config', # Linux standard (local)
        '/etc/unitlib', # Linux standard (global)
        os.environ.get('UNITLIB_INI'), # A known environment variable
        PACKAGE_PATH, # The package top
    ]


class Settings(collections.abc.Mapping):
    """One section of the package settings.

    The settings file is the first 'unitlib.ini' found in the directories
    given by `config_paths`. The package ships a default file.
    """

    def __init__(self, name: str, path: PathLike=None) -> None:
        self.name = name
        """The name of the settings section."""
        if path is None:
            path = search(config_paths(), 'unitlib.ini')
        if path is None:
            raise NonExistentPathError('unitlib.ini')
        config = configparser.ConfigParser()
        config.read(full_path(path))
        self._config = config[self.name] if config.has_section(name) else {}
        self.path = path

    def __len__(self) -> int:
        """The number of available parameter values."""
        return len(self._config)

    def __iter__(self):
        """Iterate over available parameter values."""
        yield from self._config

    def __getitem__(self, key: str):
        """Access parameter values by mapping key."""
        if key in self._config:
            return self._config[key]
        raise KeyError(
            f"Section {self.name!r} has no value for {key!r}"
        ) from None

    def getint(self, key: str, default: int) -> int:
        """Get a parameter as an integer, with a fallback value."""
        if key in self._config:
            return int(self._config[key])
        return default

    def getboolean(self, key: str, default: bool) -> bool:
        """Get a parameter as a boolean, with a fallback value."""
        if key not in self._config:
            return default
        value = self._config[key].strip().lower()
        states = configparser.ConfigParser.BOOLEAN_STATES
        if value not in states:
            raise ValueError(f"Not a boolean: {self._config[key]!r}")
        return states[value]

    def __str__(self) -> str:
        return json.dumps(
            dict(self._config),
            indent=4,
            sort_keys=True,
        )

    def __repr__(self) -> str:
        return f"unitlib.{self.name}({self.path}):\n{self}"


def read_rules(
    path: PathLike,
) -> typing.Iterator[typing.Tuple[int, str]]:
    """Generate the numbered rule definitions in a file.

    This function skips blank lines and lines whose first non-space character
    is '#'.
    """
    with full_path(path).open('r') as fp:
        for number, line in enumerate(fp, start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith('#'):
                continue
            yield number, line


_LOGGER_NAME = 'unitlib'
_handler: typing.Optional[logging.Handler] = None


def debugging(
    enabled: bool=True,
    path: PathLike=None,
    append: bool=False,
) -> logging.Logger:
    """Turn debugging output of this package on or off.

    Parameters
    ----------
    enabled : bool, default=true
        If true, send DEBUG-level trace output to the given file or to
        standard error. If false, remove the handler and restore the default
        level.

    path : path-like, optional
        A file to receive the trace output.

    append : bool, default=false
        If true, append to `path` instead of overwriting it.

    Returns
    -------
    `logging.Logger`
        The package logger.
    """
    global _handler
    logger = logging.getLogger(_LOGGER_NAME)
    if _handler is not None:
        logger.removeHandler(_handler)
        _handler.close()
        _handler = None
    if not enabled:
        logger.setLevel(logging.NOTSET)
        return logger
    if path is None:
        _handler = logging.StreamHandler()
    else:
        mode = 'a' if append else 'w'
        _handler = logging.FileHandler(
            pathlib.Path(path).expanduser(),
            mode=mode,
        )
    _handler.setFormatter(
        logging.Formatter('[%(name)s - %(funcName)s] %(message)s')
    )
    logger.addHandler(_handler)
    logger.setLevel(logging.DEBUG)
    return logger


def configure_logging(
    debug: bool=None,
    settings: Settings=None,
) -> logging.Logger:
    """Set up debugging output from the '[logging]' settings.

    An explicit value of `debug` takes precedence over the settings file.
    """
    if settings is None:
        settings = Settings('logging')
    if debug is None:
        debug = settings.getboolean('debug', False)
    path = settings.get('path') or None
    return debugging(debug, path=path)
