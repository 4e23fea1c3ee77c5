"""
Shared pytest fixtures for whenparse tests.

This module provides common fixtures used across all test files, including:
- An isolated home directory, so logs and config never touch the real one
- Time freezing utilities
- A parser with a fixed clock
"""

import pytest
from datetime import datetime
from freezegun import freeze_time

from whenparse.parser import ExpressionParser
from whenparse.whenparse_env import WhenparseEnvironment


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """
    Points WHENPARSE_HOME at a temporary directory for every test.
    """
    home = tmp_path / "whenparse-home"
    monkeypatch.setenv("WHENPARSE_HOME", str(home))
    return home


@pytest.fixture
def frozen_time():
    """
    Provides a freezegun context that freezes time to a default datetime.

    Time is frozen to Wednesday 2025-01-01 12:00:00 for the duration of the test.
    """
    with freeze_time("2025-01-01 12:00:00") as frozen:
        yield frozen


@pytest.fixture
def freeze_at():
    """
    Returns a function that freezes time to a specific datetime.

    Usage:
        def test_something(freeze_at):
            with freeze_at("2025-01-15 10:00:00"):
                ...
    """
    return freeze_time


@pytest.fixture
def now():
    """The reference instant used by the parser fixture: Wednesday 2025-01-01 12:00."""
    return datetime(2025, 1, 1, 12, 0, 0)


@pytest.fixture
def parser(now):
    """
    Provides an ExpressionParser whose clock is fixed at ``now``.

    The worker threads are shut down after the test.
    """
    p = ExpressionParser(max_workers=4, clock=lambda: now)
    yield p
    p.close()


@pytest.fixture
def parse_one(parser):
    """
    Parses an expression that is expected to have exactly one reading and
    returns that Term.
    """

    def _parse(text: str):
        selection = parser.parse_expression(text)
        assert len(selection) == 1, [t.describe() for t in selection]
        return selection[0]

    return _parse


@pytest.fixture
def test_env():
    """
    Provides a WhenparseEnvironment rooted in the temporary home.
    """
    env = WhenparseEnvironment()
    env.ensure(init_config=True)
    return env
