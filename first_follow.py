"""
FIRST / FOLLOW / PREDICT computation for flat grammars.

The engine owns two caches tied to one instance. FIRST entries are filled one
symbol at a time; FOLLOW is resolved for the whole grammar in a single fixpoint
computation. Cache keys are bare symbol names, so callers must call
``clear_cache()`` before reusing an instance on a different grammar.
"""

from dataclasses import dataclass, field
from typing import List, Set, Dict, Tuple, Optional, FrozenSet, Union

from cfg_parser import (
    Grammar,
    Production,
    EPSILON,
    END_MARKER,
    ALTERNATIVE_DELIMITER,
    GrammarError,
    GrammarAnalysisError,
    InvalidInputError,
    MalformedGrammarError,
    is_terminal,
    tokenize_alternative,
)


SymbolSet = Dict[str, Set[str]]


@dataclass
class EngineConfig:
    """Configuration options for the FIRST/FOLLOW engine."""
    epsilon: str = EPSILON
    end_marker: str = END_MARKER
    delimiter: str = ALTERNATIVE_DELIMITER
    max_follow_passes: int = 100
    record_follow_history: bool = False


class _FirstQuery:
    """State of one top-level FIRST query: the cycle guard and provisional sets."""

    def __init__(self):
        self.provisional: Dict[str, Set[str]] = {}
        self.in_progress: Set[str] = set()
        self.expanded: Set[str] = set()
        self.cycle_detected = False
        self.changed = False

    def start_pass(self):
        self.in_progress.clear()
        self.expanded.clear()
        self.changed = False


class FirstFollowComputer:
    """Computes FIRST, FOLLOW and PREDICT sets with per-instance caching."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self._first_cache: Dict[str, Set[str]] = {}
        self._follow_cache: Dict[str, Set[str]] = {}
        self._follow_history: List[Dict[str, FrozenSet[str]]] = []
        self._follow_passes = 0
        self._cache_hits = 0
        self._cache_misses = 0

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def is_terminal(self, grammar: Grammar, symbol: str) -> bool:
        return is_terminal(grammar, symbol, self.config.epsilon, self.config.end_marker)

    # ------------------------------------------------------------------
    # FIRST
    # ------------------------------------------------------------------

    def compute_first(self, grammar: Grammar, symbol: str) -> Set[str]:
        """
        Compute FIRST(symbol).

        FIRST(X) is the set of terminals that begin strings derived from X;
        epsilon is included when X can derive the empty string. A symbol with
        no productions has an empty FIRST set here, since scans add terminals
        directly.

        Returns:
            A copy of the cached set; mutating it never touches the cache
        """
        self._check_query(grammar, symbol)

        if symbol in self._first_cache:
            self._cache_hits += 1
            return set(self._first_cache[symbol])

        self._cache_misses += 1
        query = _FirstQuery()

        try:
            while True:
                query.start_pass()
                self._expand_first(grammar, symbol, query)
                # Only a query cut short by a cycle can still be incomplete
                if not (query.cycle_detected and query.changed):
                    break
        except RecursionError as e:
            raise GrammarAnalysisError(
                f"FIRST({symbol}) exceeded the recursion limit; grammar nesting is too deep"
            ) from e

        for sym, first_set in query.provisional.items():
            self._first_cache[sym] = first_set

        return set(self._first_cache[symbol])

    def _expand_first(self, grammar: Grammar, symbol: str, query: _FirstQuery) -> Set[str]:
        if symbol in self._first_cache:
            return self._first_cache[symbol]

        # Cycle guard: hand back what we have so far without re-expanding
        if symbol in query.in_progress:
            query.cycle_detected = True
            return query.provisional.get(symbol, set())

        if symbol in query.expanded:
            return query.provisional.get(symbol, set())

        query.in_progress.add(symbol)
        first_set: Set[str] = set()

        try:
            for production in grammar.productions_for(symbol):
                for alternative in production.alternatives(self.config.delimiter):
                    symbols = tokenize_alternative(alternative, self.config.epsilon)
                    first_set |= self._first_of_sequence(grammar, symbols, query)
        finally:
            query.in_progress.discard(symbol)

        query.expanded.add(symbol)
        previous = query.provisional.get(symbol)
        if previous is None or not first_set <= previous:
            query.changed = True
            first_set |= previous or set()
        else:
            first_set = previous
        query.provisional[symbol] = first_set
        return first_set

    def _first_of_sequence(self, grammar: Grammar, symbols: List[str],
                           query: _FirstQuery) -> Set[str]:
        """
        FIRST of a symbol sequence.

        - A terminal is added and stops the scan
        - A nonterminal adds FIRST - {epsilon}; the scan continues only if epsilon is in it
        - If every symbol can vanish (or there are none), epsilon is added
        """
        eps = self.config.epsilon
        result: Set[str] = set()

        for sym in symbols:
            if self.is_terminal(grammar, sym):
                # Unknown symbols land here too and are taken verbatim
                result.add(sym)
                return result

            sym_first = self._expand_first(grammar, sym, query)

            result.update(sym_first - {eps})
            if eps not in sym_first:
                return result

        result.add(eps)
        return result

    # ------------------------------------------------------------------
    # FOLLOW
    # ------------------------------------------------------------------

    def compute_follow(self, grammar: Grammar, symbol: str) -> Set[str]:
        """
        Compute FOLLOW(symbol).

        The whole-grammar fixpoint runs only while the FOLLOW cache is empty;
        later calls read the cached result. A symbol without an entry (a
        terminal, or an unknown name) gets an empty set.
        """
        self._check_query(grammar, symbol)

        if not self._follow_cache:
            self._cache_misses += 1
            self._follow_cache = self._compute_follow_sets(grammar)
        else:
            self._cache_hits += 1

        return set(self._follow_cache.get(symbol, set()))

    def _compute_follow_sets(self, grammar: Grammar) -> Dict[str, Set[str]]:
        """
        Compute FOLLOW sets for all non-terminals.

        FOLLOW(A) is the set of terminals that can appear immediately to the
        right of A in some sentential form. Passes repeat over every production
        until nothing changes, up to ``max_follow_passes``.
        """
        eps = self.config.epsilon
        follow: Dict[str, Set[str]] = {nt: set() for nt in grammar.non_terminals}

        # $ is in FOLLOW of the start symbol
        follow.setdefault(grammar.start_symbol, set()).add(self.config.end_marker)

        # Split every alternative once rather than on each pass
        sites: List[Tuple[Production, List[str]]] = []
        for production in grammar.productions:
            for alternative in production.alternatives(self.config.delimiter):
                sites.append((production, tokenize_alternative(alternative, eps)))

        self._follow_history = []
        self._record_follow_pass(follow)

        passes = 0
        changed = True
        while changed:
            if passes >= self.config.max_follow_passes:
                raise MalformedGrammarError(
                    f"FOLLOW sets did not converge after {passes} passes; "
                    f"grammar starting at '{grammar.start_symbol}' is malformed",
                    passes=passes,
                )
            passes += 1
            changed = False

            for production, symbols in sites:
                lhs = production.non_terminal
                for i, symbol in enumerate(symbols):
                    if self.is_terminal(grammar, symbol):
                        continue
                    try:
                        trailer, vanishes = self._scan_trailer(grammar, symbols[i + 1:])
                    except (InvalidInputError, MalformedGrammarError):
                        raise
                    except GrammarError as e:
                        raise GrammarAnalysisError(
                            f"FOLLOW({symbol}) failed in production {production}: {e}"
                        ) from e

                    target = follow[symbol]
                    before_size = len(target)
                    target |= trailer

                    # Rule: if the rest can vanish, FOLLOW(lhs) flows into FOLLOW(symbol)
                    if vanishes and symbol != lhs:
                        target |= follow[lhs]

                    if len(target) > before_size:
                        changed = True

            self._record_follow_pass(follow)

        self._follow_passes = passes
        return follow

    def _scan_trailer(self, grammar: Grammar, trailer: List[str]) -> Tuple[Set[str], bool]:
        """Return FIRST(trailer) - {epsilon} and whether the whole trailer can vanish."""
        eps = self.config.epsilon
        result: Set[str] = set()

        for sym in trailer:
            if self.is_terminal(grammar, sym):
                result.add(sym)
                return result, False
            sym_first = self.compute_first(grammar, sym)
            result.update(sym_first - {eps})
            if eps not in sym_first:
                return result, False

        return result, True

    def _record_follow_pass(self, follow: Dict[str, Set[str]]):
        if self.config.record_follow_history:
            self._follow_history.append({nt: frozenset(s) for nt, s in follow.items()})

    @property
    def follow_history(self) -> List[Dict[str, FrozenSet[str]]]:
        """Snapshots of every FOLLOW set after seeding and after each pass."""
        return list(self._follow_history)

    # ------------------------------------------------------------------
    # PREDICT
    # ------------------------------------------------------------------

    def compute_predict(self, grammar: Grammar, production: Production) -> Set[str]:
        """
        Compute PREDICT(A -> alpha).

        PREDICT = FIRST(alpha) if epsilon is not in FIRST(alpha),
        else (FIRST(alpha) - {epsilon}) | FOLLOW(A).

        A production carrying several alternatives yields the union over them.
        """
        if production is None or not production.non_terminal:
            raise InvalidInputError("Production with a left-hand side is required")
        self._check_query(grammar, production.non_terminal)

        predict: Set[str] = set()
        for alternative in production.alternatives(self.config.delimiter):
            predict |= self._predict_alternative(grammar, production.non_terminal, alternative)
        return predict

    def _predict_alternative(self, grammar: Grammar, lhs: str, alternative: str) -> Set[str]:
        symbols = tokenize_alternative(alternative, self.config.epsilon)

        # Empty production: PREDICT = FOLLOW(A)
        if not symbols:
            return self.compute_follow(grammar, lhs)

        try:
            trailer, vanishes = self._scan_trailer(grammar, symbols)
        except (InvalidInputError, MalformedGrammarError):
            raise
        except GrammarError as e:
            raise GrammarAnalysisError(f"PREDICT({lhs} -> {alternative}) failed: {e}") from e

        if vanishes:
            trailer |= self.compute_follow(grammar, lhs)
        return trailer

    # ------------------------------------------------------------------
    # Cache lifecycle
    # ------------------------------------------------------------------

    def clear_cache(self):
        """Forget every FIRST and FOLLOW result. Required before switching grammars."""
        self._first_cache.clear()
        self._follow_cache.clear()
        self._follow_history = []
        self._follow_passes = 0

    def get_cache_stats(self) -> Dict[str, Union[int, float]]:
        """Get cache performance statistics."""
        total_requests = self._cache_hits + self._cache_misses
        hit_rate = (self._cache_hits / total_requests * 100) if total_requests > 0 else 0
        return {
            'cache_hits': self._cache_hits,
            'cache_misses': self._cache_misses,
            'hit_rate_percent': round(hit_rate, 2),
            'cached_first': len(self._first_cache),
            'cached_follow': len(self._follow_cache),
            'follow_passes': self._follow_passes,
        }

    def _check_query(self, grammar: Grammar, symbol: str):
        if grammar is None or not grammar.start_symbol or not grammar.productions:
            raise InvalidInputError("Grammar with a start symbol and productions is required")
        if not symbol or not symbol.strip():
            raise InvalidInputError("Symbol must be a non-empty string")


@dataclass
class GrammarAnalysis:
    """FIRST/FOLLOW maps per nonterminal and PREDICT per alternative."""
    grammar: Grammar
    first: SymbolSet = field(default_factory=dict)
    follow: SymbolSet = field(default_factory=dict)
    predict: List[Tuple[Production, Set[str]]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        """JSON-friendly view with every set sorted, markers last."""
        predict: Dict[str, Dict[str, List[str]]] = {}
        for production, predict_set in self.predict:
            alt = production.right_side or EPSILON
            predict.setdefault(production.non_terminal, {})[alt] = sorted_symbols(predict_set)
        return {
            'start_symbol': self.grammar.start_symbol,
            'first': {nt: sorted_symbols(s) for nt, s in self.first.items()},
            'follow': {nt: sorted_symbols(s) for nt, s in self.follow.items()},
            'predict': predict,
        }

    def symbol_sets(self) -> List[Dict[str, object]]:
        """One record per nonterminal with its FIRST, FOLLOW and PREDICT entries."""
        predict = self.to_dict()['predict']
        return [
            {
                'nonTerminal': nt,
                'first': sorted_symbols(self.first[nt]),
                'follow': sorted_symbols(self.follow[nt]),
                'predict': predict.get(nt, {}),
            }
            for nt in self.first
        ]


def sorted_symbols(symbols: Set[str]) -> List[str]:
    """Deterministic presentation order: ordinary symbols sorted, then ε, then $."""
    markers = [m for m in (EPSILON, END_MARKER) if m in symbols]
    return sorted(s for s in symbols if s not in (EPSILON, END_MARKER)) + markers


def analyze_grammar(grammar: Grammar,
                    computer: Optional[FirstFollowComputer] = None) -> GrammarAnalysis:
    """
    Compute FIRST and FOLLOW for every nonterminal and PREDICT for every alternative.

    The computer's caches are cleared first so a reused instance cannot leak
    results from a previous grammar.
    """
    computer = computer or FirstFollowComputer()
    computer.clear_cache()

    analysis = GrammarAnalysis(grammar=grammar)
    for nt in grammar.non_terminals:
        analysis.first[nt] = computer.compute_first(grammar, nt)
    for nt in grammar.non_terminals:
        analysis.follow[nt] = computer.compute_follow(grammar, nt)
    for production in grammar.productions:
        for alternative in production.split(computer.config.delimiter):
            analysis.predict.append(
                (alternative, computer.compute_predict(grammar, alternative))
            )
    return analysis
