import sys
from pathlib import Path

import pytest

# This file lives at <project_root>/tests/conftest.py
PROJECT_ROOT = Path(__file__).resolve().parents[1]

# Ensure the flat top-level modules import regardless of CWD
proj = str(PROJECT_ROOT)
if proj not in sys.path:
    sys.path.insert(0, proj)

from cfg_parser import Grammar, Production  # noqa: E402


@pytest.fixture
def expression_grammar():
    # E -> T E' ; E' -> + T E' | ε ; T -> id
    return Grammar(
        start_symbol="E",
        productions=(
            Production("E", "T E'"),
            Production("E'", "+ T E' | ε"),
            Production("T", "id"),
        ),
    )


@pytest.fixture
def cyclic_grammar():
    return Grammar(
        start_symbol="A",
        productions=(
            Production("A", "B"),
            Production("B", "A | a"),
        ),
    )


@pytest.fixture
def arithmetic_grammar():
    # Classic LL(1) arithmetic expressions
    return Grammar(
        start_symbol="E",
        productions=(
            Production("E", "T E'"),
            Production("E'", "+ T E' | ε"),
            Production("T", "F T'"),
            Production("T'", "* F T' | ε"),
            Production("F", "( E ) | id"),
        ),
    )


def reversed_chain_grammar(length):
    """
    A0 -> A1, A1 -> A2, ... listed last-to-first so FOLLOW($) moves one link per pass.
    """
    productions = [Production(f"A{length}", "a")]
    for i in reversed(range(length)):
        productions.append(Production(f"A{i}", f"A{i + 1}"))
    return Grammar(start_symbol="A0", productions=tuple(productions))


@pytest.fixture
def chain_grammar():
    return reversed_chain_grammar
