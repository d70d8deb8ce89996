"""
In-memory grammar storage keyed by identifier, plus the JSON mapping used by
the HTTP layer.
"""

import threading
import uuid
from typing import Any, Dict, List, Optional, Tuple

from cfg_parser import Grammar, Production, InvalidInputError


def grammar_to_dict(grammar: Grammar, grammar_id: Optional[str] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "startSymbol": grammar.start_symbol,
        "productions": [
            {"nonTerminal": prod.non_terminal, "rightSide": prod.right_side}
            for prod in grammar.productions
        ],
    }
    if grammar_id is not None:
        data = {"id": grammar_id, **data}
    return data


def grammar_from_dict(data: Dict[str, Any]) -> Grammar:
    """
    Build a Grammar from its JSON form.

    Raises:
        InvalidInputError: if the body is not an object, the start symbol is
            missing, or a production lacks its nonterminal
    """
    if not isinstance(data, dict):
        raise InvalidInputError("Grammar body must be a JSON object")

    start_symbol = data.get("startSymbol")
    if not start_symbol or not isinstance(start_symbol, str):
        raise InvalidInputError("Start symbol is required")

    raw_productions = data.get("productions") or []
    if not isinstance(raw_productions, list):
        raise InvalidInputError("Productions must be a list")

    productions = []
    for index, raw in enumerate(raw_productions):
        if not isinstance(raw, dict) or not raw.get("nonTerminal"):
            raise InvalidInputError(f"Production {index} has no nonTerminal")
        productions.append(Production(
            non_terminal=str(raw["nonTerminal"]).strip(),
            right_side=str(raw.get("rightSide") or ""),
        ))

    terminals = data.get("terminals")
    return Grammar(
        start_symbol=start_symbol.strip(),
        productions=tuple(productions),
        terminals=frozenset(terminals) if terminals else None,
    )


class GrammarStore:
    """Thread-safe in-memory grammar repository."""

    def __init__(self):
        self._grammars: Dict[str, Grammar] = {}
        self._lock = threading.Lock()

    def add(self, grammar: Grammar) -> str:
        grammar_id = str(uuid.uuid4())
        with self._lock:
            self._grammars[grammar_id] = grammar
        return grammar_id

    def get(self, grammar_id: str) -> Optional[Grammar]:
        with self._lock:
            return self._grammars.get(grammar_id)

    def list(self) -> List[Tuple[str, Grammar]]:
        with self._lock:
            return list(self._grammars.items())

    def delete(self, grammar_id: str) -> bool:
        with self._lock:
            return self._grammars.pop(grammar_id, None) is not None

    def clear(self):
        with self._lock:
            self._grammars.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._grammars)
