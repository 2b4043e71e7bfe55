"""
Shared fixtures for the Logic Lens tests.
"""
import pytest

from code_runner import CodeRunner
from memory import Memory


@pytest.fixture
def memory():
    return Memory()


@pytest.fixture
def runner():
    return CodeRunner()


def step_through(runner, code, limit=500):
    """Run ``code`` to completion, returning every paused state and the final one."""
    state = runner.run(code)
    paused = []
    while state.running:
        paused.append(state)
        assert len(paused) <= limit, "program never finished"
        state = runner.advance()
    return paused, state


def trace(paused):
    return [(state.snapshot.line, state.snapshot.variables) for state in paused]
