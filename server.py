import os
import sys
import traceback
from flask import Flask, request, jsonify

from cfg_parser import (
    GrammarProcessor,
    GrammarError,
    MalformedGrammarError,
    UndefinedSymbolError,
    InvalidGrammarError,
    validate_grammar,
)
from first_follow import FirstFollowComputer, analyze_grammar, sorted_symbols
from grammar_store import GrammarStore, grammar_to_dict, grammar_from_dict
from visualization import SetTableGenerator

app = Flask(__name__)

# Grammars live for the lifetime of the process
store = GrammarStore()

DEFAULT_HOST = '127.0.0.1'
DEFAULT_PORT = 5000


# --- HTML Escape Helper ---
def escapeHtml(unsafe):
    if unsafe is None: return ''
    unsafe = str(unsafe)
    return unsafe.replace('&', '&amp;').replace('<', '&lt;').replace('>', '&gt;').replace('"', '&quot;').replace("'", '&#039;')


def _error_type(error):
    if isinstance(error, MalformedGrammarError):
        return "malformed_grammar"
    if isinstance(error, UndefinedSymbolError):
        return "undefined_symbol"
    if isinstance(error, InvalidGrammarError):
        return "invalid_grammar"
    return "invalid_input"


def _grammar_error_response(error):
    """Map a GrammarError to its JSON body and status code."""
    status = 422 if isinstance(error, MalformedGrammarError) else 400
    print(f"--- {type(error).__name__}: {error} ---", file=sys.stderr)
    return jsonify({"error": str(error), "error_type": _error_type(error)}), status


def _unexpected_error_response(error):
    print(f"--- UNEXPECTED Python Error: {error} ---", file=sys.stderr)
    traceback.print_exc(file=sys.stderr)
    return jsonify({
        "error": f"Unexpected server error: {escapeHtml(str(error))}",
        "error_type": "system_error"
    }), 500


def _not_found(grammar_id):
    return jsonify({"error": f"Grammar with ID '{grammar_id}' not found"}), 404


def _strict_requested():
    return request.args.get('strict', '').lower() in ('1', 'true', 'yes')


# --- Grammar CRUD ---

@app.route('/api/grammar', methods=['POST'])
def add_grammar():
    """Validate and store a grammar; lenient mode reports undefined symbols as warnings."""
    data = request.get_json(silent=True)
    if data is None:
        return jsonify({"error": "Grammar cannot be null"}), 400

    try:
        grammar = grammar_from_dict(data)
        warnings = validate_grammar(grammar, strict=_strict_requested())
        grammar_id = store.add(grammar)
        print(f"--- Stored grammar {grammar_id} ({len(grammar.productions)} productions) ---", file=sys.stderr)

        body = grammar_to_dict(grammar, grammar_id)
        if warnings:
            body["warnings"] = warnings
        response = jsonify(body)
        response.status_code = 201
        response.headers['Location'] = f"/api/grammar/{grammar_id}"
        return response
    except GrammarError as e:
        return _grammar_error_response(e)
    except Exception as e:
        return _unexpected_error_response(e)


@app.route('/api/grammar', methods=['GET'])
def get_all_grammars():
    return jsonify([grammar_to_dict(g, grammar_id) for grammar_id, g in store.list()])


@app.route('/api/grammar/<grammar_id>', methods=['GET'])
def get_grammar(grammar_id):
    grammar = store.get(grammar_id)
    if grammar is None:
        return _not_found(grammar_id)
    return jsonify(grammar_to_dict(grammar, grammar_id))


@app.route('/api/grammar/<grammar_id>', methods=['DELETE'])
def delete_grammar(grammar_id):
    if not store.delete(grammar_id):
        return _not_found(grammar_id)
    print(f"--- Deleted grammar {grammar_id} ---", file=sys.stderr)
    return '', 204


# --- Set computation ---

@app.route('/api/grammar/<grammar_id>/first', methods=['GET'])
def get_first(grammar_id):
    """FIRST set of every distinct nonterminal."""
    grammar = store.get(grammar_id)
    if grammar is None:
        return _not_found(grammar_id)

    try:
        print(f"--- Computing FIRST sets for {grammar_id} ---", file=sys.stderr)
        # One engine per request: caches never outlive this grammar
        computer = FirstFollowComputer()
        result = {}
        for nt in grammar.non_terminals:
            result[nt] = sorted_symbols(computer.compute_first(grammar, nt))
        return jsonify(result)
    except GrammarError as e:
        return _grammar_error_response(e)
    except Exception as e:
        return _unexpected_error_response(e)


@app.route('/api/grammar/<grammar_id>/follow', methods=['GET'])
def get_follow(grammar_id):
    """FOLLOW set of every distinct nonterminal."""
    grammar = store.get(grammar_id)
    if grammar is None:
        return _not_found(grammar_id)

    try:
        print(f"--- Computing FOLLOW sets for {grammar_id} ---", file=sys.stderr)
        computer = FirstFollowComputer()
        result = {}
        for nt in grammar.non_terminals:
            result[nt] = sorted_symbols(computer.compute_follow(grammar, nt))
        print(f"FOLLOW converged after {computer.get_cache_stats()['follow_passes']} passes", file=sys.stderr)
        return jsonify(result)
    except GrammarError as e:
        return _grammar_error_response(e)
    except Exception as e:
        return _unexpected_error_response(e)


@app.route('/api/grammar/<grammar_id>/predict', methods=['GET'])
def get_predict(grammar_id):
    """PREDICT set of every alternative, grouped by nonterminal."""
    grammar = store.get(grammar_id)
    if grammar is None:
        return _not_found(grammar_id)

    try:
        print(f"--- Computing PREDICT sets for {grammar_id} ---", file=sys.stderr)
        computer = FirstFollowComputer()
        result = {}
        for production in grammar.productions:
            for alternative in production.split(computer.config.delimiter):
                key = alternative.right_side or "ε"
                result.setdefault(production.non_terminal, {})[key] = sorted_symbols(
                    computer.compute_predict(grammar, alternative)
                )
        return jsonify(result)
    except GrammarError as e:
        return _grammar_error_response(e)
    except Exception as e:
        return _unexpected_error_response(e)


@app.route('/api/grammar/<grammar_id>/sets', methods=['GET'])
def get_symbol_sets(grammar_id):
    """FIRST, FOLLOW and PREDICT together, one record per nonterminal."""
    grammar = store.get(grammar_id)
    if grammar is None:
        return _not_found(grammar_id)

    try:
        analysis = analyze_grammar(grammar)
        return jsonify(analysis.symbol_sets())
    except GrammarError as e:
        return _grammar_error_response(e)
    except Exception as e:
        return _unexpected_error_response(e)


@app.route('/analyze-grammar', methods=['POST'])
def analyze_grammar_text():
    """
    Parse CFG text and return FIRST, FOLLOW and PREDICT sets.

    Accepts an optional start symbol; otherwise the first left-hand side is used.
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object", "error_type": "invalid_input"}), 400

    cfg_input = data.get('cfg')
    start_symbol = data.get('start_symbol')

    if not cfg_input:
        return jsonify({"error": "No CFG provided", "error_type": "invalid_input"}), 400
    if not isinstance(cfg_input, str):
        return jsonify({"error": "CFG must be a string", "error_type": "invalid_input"}), 400
    if start_symbol is not None and not isinstance(start_symbol, str):
        return jsonify({"error": "Start symbol must be a string", "error_type": "invalid_input"}), 400

    try:
        print("--- Analyzing CFG ---", file=sys.stderr)
        grammar = GrammarProcessor().parse_grammar(cfg_input, start_symbol=start_symbol)
        warnings = validate_grammar(grammar, strict=_strict_requested())

        analysis = analyze_grammar(grammar)
        print("--- Analysis SUCCEEDED ---", file=sys.stderr)

        body = analysis.to_dict()
        body["success"] = True
        body["warnings"] = warnings
        body["sets_html"] = SetTableGenerator().generate_analysis_html(analysis)
        return jsonify(body)
    except GrammarError as e:
        return _grammar_error_response(e)
    except Exception as e:
        return _unexpected_error_response(e)


# --- Main Execution ---
if __name__ == '__main__':
    host = os.environ.get('GRAMMAR_SERVICE_HOST', DEFAULT_HOST)
    port = int(os.environ.get('GRAMMAR_SERVICE_PORT', DEFAULT_PORT))

    print("--- Grammar Analysis Server ---")
    print(f"Running on http://{host}:{port}")
    print("-" * 34)
    app.run(host=host, port=port, debug=False)
