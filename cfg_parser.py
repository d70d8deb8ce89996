"""
CFG Parser - Grammar Model and Grammar Text Processing

This module defines the immutable grammar model consumed by the FIRST/FOLLOW
engine, the structural terminal/nonterminal classifier, the error hierarchy
shared by the engine and the HTTP layer, and a processor that turns
"A -> alpha | beta" text into Grammar objects.
"""

from dataclasses import dataclass, field
from typing import List, Set, Dict, Tuple, Optional, FrozenSet, Iterable
import re


EPSILON = "ε"
END_MARKER = "$"
ALTERNATIVE_DELIMITER = "|"

# Spellings of the empty string accepted in grammar text
EPSILON_ALIASES = ("ε", "e", "eps", "epsilon")

_PRODUCTION_START = re.compile(r'^\s*((?:(?!->)[^\s|:=])+)\s*(?:->|:|=)')
_PRODUCTION_LINE = re.compile(r'^\s*((?:(?!->)[^\s|:=])+)\s*(?:->|:|=)\s*(.*)$', re.DOTALL)


class GrammarError(Exception):
    """Base class for grammar analysis failures."""


class InvalidInputError(GrammarError):
    """An empty grammar, empty symbol or unreadable grammar text."""


class InvalidGrammarError(GrammarError):
    """The grammar breaks a structural invariant (e.g. start symbol has no production)."""


class UndefinedSymbolError(InvalidGrammarError):
    """Strict validation found a symbol that is referenced but never defined."""

    def __init__(self, symbol: str, production: "Production"):
        self.symbol = symbol
        self.production = production
        super().__init__(f"Undefined symbol '{symbol}' in production {production}")


class MalformedGrammarError(GrammarError):
    """The FOLLOW fixpoint did not converge within its pass bound."""

    def __init__(self, message: str, passes: int = 0):
        self.passes = passes
        super().__init__(message)


class GrammarAnalysisError(GrammarError):
    """An internal failure while computing a set, wrapped with its context."""


@dataclass(frozen=True)
class Production:
    """A flat production: one nonterminal and the raw text of its alternatives."""
    non_terminal: str
    right_side: str = ""

    def __str__(self) -> str:
        rhs = self.right_side.strip()
        return f"{self.non_terminal} -> {rhs if rhs else EPSILON}"

    def alternatives(self, delimiter: str = ALTERNATIVE_DELIMITER) -> List[str]:
        """Return the stripped alternative texts; an empty right side is one empty alternative."""
        return [alt.strip() for alt in self.right_side.split(delimiter)]

    def split(self, delimiter: str = ALTERNATIVE_DELIMITER) -> List["Production"]:
        """Return one single-alternative Production per alternative, in order."""
        return [Production(self.non_terminal, alt) for alt in self.alternatives(delimiter)]


@dataclass(frozen=True)
class Grammar:
    """
    Represents a context-free grammar.

    Productions keep their input order. ``terminals`` is an optional declared
    terminal set; classification never depends on it, only strict validation does.
    """
    start_symbol: str
    productions: Tuple[Production, ...] = ()
    terminals: Optional[FrozenSet[str]] = field(default=None, compare=False)

    def __post_init__(self):
        # Accept lists for convenience but store an immutable tuple
        if not isinstance(self.productions, tuple):
            object.__setattr__(self, 'productions', tuple(self.productions))
        if self.terminals is not None and not isinstance(self.terminals, frozenset):
            object.__setattr__(self, 'terminals', frozenset(self.terminals))

    def __str__(self) -> str:
        lines = [f"Start Symbol: {self.start_symbol}"]
        lines.append(f"Non-terminals: {self.non_terminals}")
        lines.append("Productions:")
        for prod in self.productions:
            lines.append(f"  {prod}")
        return "\n".join(lines)

    @property
    def non_terminals(self) -> List[str]:
        """Distinct left-hand sides in order of first appearance."""
        seen: Dict[str, None] = {}
        for prod in self.productions:
            seen.setdefault(prod.non_terminal, None)
        return list(seen)

    def productions_for(self, symbol: str) -> List[Production]:
        return [prod for prod in self.productions if prod.non_terminal == symbol]

    def has_productions(self, symbol: str) -> bool:
        return any(prod.non_terminal == symbol for prod in self.productions)


def is_terminal(grammar: Grammar, symbol: str,
                epsilon: str = EPSILON, end_marker: str = END_MARKER) -> bool:
    """
    Structural classification: a symbol is a nonterminal iff it is the left-hand
    side of at least one production. Empty strings and the epsilon/end markers
    are always terminal.
    """
    if not symbol or symbol == epsilon or symbol == end_marker:
        return True
    return not grammar.has_productions(symbol)


def tokenize_alternative(alternative: str, epsilon: str = EPSILON) -> List[str]:
    """
    Split one alternative into its symbols.

    An empty alternative or a lone epsilon token yields an empty list. An
    epsilon token inside a longer sequence derives nothing and is dropped.
    """
    return [sym for sym in alternative.split() if sym != epsilon]


def validate_grammar(grammar: Grammar, strict: bool = False,
                     epsilon: str = EPSILON, end_marker: str = END_MARKER,
                     delimiter: str = ALTERNATIVE_DELIMITER) -> List[str]:
    """
    Check the grammar invariants and look for undefined symbols.

    Args:
        grammar: The grammar to check
        strict: Raise UndefinedSymbolError instead of returning warnings
        delimiter: Separator between alternatives in a right side

    Returns:
        One warning string per undefined-looking symbol (lenient mode only)
    """
    if not grammar.start_symbol:
        raise InvalidGrammarError("Start symbol is required")
    if not grammar.productions:
        raise InvalidGrammarError("Grammar has no productions")
    if not grammar.has_productions(grammar.start_symbol):
        raise InvalidGrammarError(
            f"Start symbol '{grammar.start_symbol}' has no production"
        )

    non_terminals = set(grammar.non_terminals)
    warnings: List[str] = []
    reported: Set[str] = set()

    for prod in grammar.productions:
        if not prod.non_terminal.strip():
            raise InvalidGrammarError(f"Production with empty left-hand side: {prod}")
        for alt in prod.alternatives(delimiter):
            for symbol in tokenize_alternative(alt, epsilon):
                if symbol in non_terminals or symbol in (epsilon, end_marker):
                    continue
                if grammar.terminals is not None:
                    undefined = symbol not in grammar.terminals
                else:
                    # Without a declared terminal set, an uppercase initial reads as a nonterminal
                    undefined = symbol[0].isalpha() and symbol[0].isupper()
                if not undefined or symbol in reported:
                    continue
                if strict:
                    raise UndefinedSymbolError(symbol, prod)
                reported.add(symbol)
                warnings.append(
                    f"Symbol '{symbol}' in '{prod}' has no production and is treated as a terminal"
                )

    return warnings


class GrammarProcessor:
    """Processes CFG input text and creates Grammar objects."""

    def __init__(self, delimiter: str = ALTERNATIVE_DELIMITER):
        self.delimiter = delimiter
        self.productions: List[Production] = []

    def parse_grammar(self, cfg_text: str, start_symbol: Optional[str] = None) -> Grammar:
        """
        Parse CFG input text and return a Grammar object.

        Supports formats:
        - A -> alpha | beta
        - A : alpha | beta
        - A = alpha | beta

        Epsilon alternatives may be written empty or as ε, e, eps or epsilon.
        """
        self._reset()

        if not cfg_text or not cfg_text.strip():
            raise InvalidInputError("No grammar text provided")

        cfg_text = self._clean_input(cfg_text)
        raw_productions = self._extract_raw_productions(cfg_text)
        self.productions = self._normalize_productions(raw_productions)

        if not self.productions:
            raise InvalidInputError("No productions found in grammar text")

        # First left-hand side unless the caller picked one
        start = start_symbol or self.productions[0].non_terminal
        return Grammar(start_symbol=start, productions=tuple(self.productions))

    def _reset(self):
        self.productions = []

    def _clean_input(self, cfg_text: str) -> str:
        """Remove comments and blank lines, keep line structure."""
        cfg_text = re.sub(r'//.*$', '', cfg_text, flags=re.MULTILINE)
        cfg_text = re.sub(r'/\*.*?\*/', '', cfg_text, flags=re.DOTALL)

        lines = []
        for line in cfg_text.split('\n'):
            line = line.strip()
            if line:
                lines.append(line)

        return '\n'.join(lines)

    def _extract_raw_productions(self, cfg_text: str) -> List[Tuple[int, str]]:
        """Group lines into (line number, production text), joining '|' continuations."""
        productions: List[Tuple[int, str]] = []
        current: Optional[Tuple[int, str]] = None

        lines = cfg_text.split('\n') if cfg_text else []
        for lineno, line in enumerate(lines, start=1):
            if _PRODUCTION_START.match(line) and not line.startswith(self.delimiter):
                if current:
                    productions.append(current)
                current = (lineno, line)
            elif line.startswith(self.delimiter) and current:
                # Continuation with another alternative
                current = (current[0], f"{current[1]} {line}")
            else:
                raise InvalidInputError(f"Line {lineno} is not a production: {line!r}")

        if current:
            productions.append(current)

        return productions

    def _normalize_productions(self, raw_productions: Iterable[Tuple[int, str]]) -> List[Production]:
        """Convert raw production strings to Production objects."""
        productions = []

        for lineno, raw_prod in raw_productions:
            match = _PRODUCTION_LINE.match(raw_prod)
            if not match:
                raise InvalidInputError(f"Line {lineno} is not a production: {raw_prod!r}")

            lhs = match.group(1).strip()
            alternatives = [
                self._normalize_alternative(alt)
                for alt in match.group(2).split(self.delimiter)
            ]
            productions.append(Production(lhs, f" {self.delimiter} ".join(alternatives).strip()))

        return productions

    def _normalize_alternative(self, alternative: str) -> str:
        symbols = alternative.split()
        if len(symbols) == 1 and symbols[0] in EPSILON_ALIASES:
            return EPSILON
        return " ".join(symbols)
