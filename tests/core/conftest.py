import pathlib

import pytest

from unitlib.core import environment


@pytest.fixture
def env():
    """A fresh unit environment."""
    with environment.Environment() as instance:
        yield instance


@pytest.fixture
def rulefile(tmp_path: pathlib.Path):
    """A function that writes rule definitions to a temporary file."""
    def write(*lines: str, name: str='rules.txt') -> pathlib.Path:
        path = tmp_path / name
        path.write_text('\n'.join(lines) + '\n')
        return path
    return write
