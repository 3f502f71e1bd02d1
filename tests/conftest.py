"""Shared fixtures: the sample shop project and symbol builders."""
import shutil
from pathlib import Path

import pytest

from usedby.analyzer.models import Position, Range, Symbol, Usage

FIXTURES_DIR = Path(__file__).parent / 'fixtures' / 'project'


@pytest.fixture
def project_dir(tmp_path):
    """Writable copy of the sample project (scans create a cache inside it)."""
    target = tmp_path / 'shop'
    shutil.copytree(FIXTURES_DIR, target)
    return target


def make_symbol(name, file_path, line, kind='class', character=0, usages=None):
    position = Position(line, character)
    return Symbol(
        id=f"{file_path}#{name}#{line}:{character}",
        name=name,
        kind=kind,
        file_path=file_path,
        position=position,
        range=Range(position, Position(line, character + len(name))),
        usages=list(usages or []),
    )


def make_usage(file_path, line, kind='call', character=4):
    position = Position(line, character)
    return Usage(
        file_path=file_path,
        position=position,
        range=Range(position, Position(line, character + 3)),
        context='',
        kind=kind,
    )


@pytest.fixture
def symbol_factory():
    return make_symbol


@pytest.fixture
def usage_factory():
    return make_usage
