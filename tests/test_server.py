import pytest

import server
from first_follow import FirstFollowComputer


EXPRESSION_BODY = {
    "startSymbol": "E",
    "productions": [
        {"nonTerminal": "E", "rightSide": "T E'"},
        {"nonTerminal": "E'", "rightSide": "+ T E' | ε"},
        {"nonTerminal": "T", "rightSide": "id"},
    ],
}


@pytest.fixture
def client():
    server.app.config["TESTING"] = True
    server.store.clear()
    with server.app.test_client() as client:
        yield client
    server.store.clear()


def _create(client, body=EXPRESSION_BODY, query=""):
    response = client.post(f"/api/grammar{query}", json=body)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["id"]


def test_create_and_fetch_grammar(client):
    response = client.post("/api/grammar", json=EXPRESSION_BODY)
    assert response.status_code == 201
    created = response.get_json()
    assert created["startSymbol"] == "E"
    assert response.headers["Location"].endswith(created["id"])

    fetched = client.get(f"/api/grammar/{created['id']}").get_json()
    assert fetched == created

    listing = client.get("/api/grammar").get_json()
    assert [g["id"] for g in listing] == [created["id"]]


def test_create_rejects_missing_body_and_start_symbol(client):
    assert client.post("/api/grammar", data="nope", content_type="text/plain").status_code == 400

    response = client.post("/api/grammar", json={"productions": []})
    assert response.status_code == 400
    assert response.get_json()["error_type"] == "invalid_input"


def test_create_rejects_start_symbol_without_production(client):
    body = {"startSymbol": "S", "productions": [{"nonTerminal": "A", "rightSide": "a"}]}
    response = client.post("/api/grammar", json=body)
    assert response.status_code == 400
    assert response.get_json()["error_type"] == "invalid_grammar"


def test_lenient_and_strict_undefined_symbols(client):
    body = {"startSymbol": "S", "productions": [{"nonTerminal": "S", "rightSide": "a Typo"}]}

    response = client.post("/api/grammar", json=body)
    assert response.status_code == 201
    assert len(response.get_json()["warnings"]) == 1

    response = client.post("/api/grammar?strict=true", json=body)
    assert response.status_code == 400
    assert response.get_json()["error_type"] == "undefined_symbol"


def test_unknown_grammar_is_404(client):
    for path in ("", "/first", "/follow", "/predict", "/sets"):
        assert client.get(f"/api/grammar/missing{path}").status_code == 404
    assert client.delete("/api/grammar/missing").status_code == 404


def test_delete_grammar(client):
    grammar_id = _create(client)
    assert client.delete(f"/api/grammar/{grammar_id}").status_code == 204
    assert client.get(f"/api/grammar/{grammar_id}").status_code == 404


def test_first_follow_predict_endpoints(client):
    grammar_id = _create(client)

    first = client.get(f"/api/grammar/{grammar_id}/first").get_json()
    assert first == {"E": ["id"], "E'": ["+", "ε"], "T": ["id"]}

    follow = client.get(f"/api/grammar/{grammar_id}/follow").get_json()
    assert follow == {"E": ["$"], "E'": ["$"], "T": ["+", "$"]}

    predict = client.get(f"/api/grammar/{grammar_id}/predict").get_json()
    assert predict == {
        "E": {"T E'": ["id"]},
        "E'": {"+ T E'": ["+"], "ε": ["$"]},
        "T": {"id": ["id"]},
    }


def test_sets_endpoint(client):
    grammar_id = _create(client)
    records = client.get(f"/api/grammar/{grammar_id}/sets").get_json()
    assert [r["nonTerminal"] for r in records] == ["E", "E'", "T"]
    assert records[2] == {
        "nonTerminal": "T",
        "first": ["id"],
        "follow": ["+", "$"],
        "predict": {"id": ["id"]},
    }


def test_non_converging_follow_is_422(client):
    length = 120
    productions = [{"nonTerminal": f"A{length}", "rightSide": "a"}]
    for i in reversed(range(length)):
        productions.append({"nonTerminal": f"A{i}", "rightSide": f"A{i + 1}"})
    grammar_id = _create(client, {"startSymbol": "A0", "productions": productions})

    response = client.get(f"/api/grammar/{grammar_id}/follow")
    assert response.status_code == 422
    assert response.get_json()["error_type"] == "malformed_grammar"


def test_unexpected_errors_are_500(client, monkeypatch):
    grammar_id = _create(client)

    def broken(self, grammar, symbol):
        raise RuntimeError("<boom>")

    monkeypatch.setattr(FirstFollowComputer, "compute_first", broken)
    response = client.get(f"/api/grammar/{grammar_id}/first")
    assert response.status_code == 500
    body = response.get_json()
    assert body["error_type"] == "system_error"
    assert "&lt;boom&gt;" in body["error"]


def test_analyze_grammar_text(client):
    response = client.post("/analyze-grammar", json={
        "cfg": "E -> T E'\nE' -> + T E' | eps\nT -> id",
    })
    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["start_symbol"] == "E"
    assert body["follow"]["T"] == ["+", "$"]
    assert body["predict"]["E'"]["ε"] == ["$"]
    assert body["warnings"] == []
    assert "<table" in body["sets_html"]


def test_analyze_grammar_text_errors(client):
    assert client.post("/analyze-grammar", json={}).status_code == 400

    response = client.post("/analyze-grammar", json={"cfg": "not a grammar"})
    assert response.status_code == 400
    assert response.get_json()["error_type"] == "invalid_input"

    response = client.post("/analyze-grammar", json={"cfg": "A -> a", "start_symbol": "Z"})
    assert response.status_code == 400
    assert response.get_json()["error_type"] == "invalid_grammar"


@pytest.mark.parametrize("payload", [["S -> a"], "S -> a", 42])
def test_analyze_grammar_rejects_non_object_body(client, payload):
    response = client.post("/analyze-grammar", json=payload)
    assert response.status_code == 400
    assert response.get_json()["error_type"] == "invalid_input"


@pytest.mark.parametrize("body", [
    {"cfg": 123},
    {"cfg": ["S -> a"]},
    {"cfg": "S -> a", "start_symbol": 7},
])
def test_analyze_grammar_rejects_non_string_fields(client, body):
    response = client.post("/analyze-grammar", json=body)
    assert response.status_code == 400
    assert response.get_json()["error_type"] == "invalid_input"
