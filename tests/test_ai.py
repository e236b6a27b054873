import json
from unittest import mock

import pytest
from google.api_core.exceptions import InternalServerError, ResourceExhausted

from dbstudio.api import ai_routes
from dbstudio.api.ai_utils import (
    FALLBACK_MESSAGE, build_prompt, generate_with_retry, is_rate_limited, parse_generation,
)


class FakeModel:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.prompts = []

    def generate_content(self, prompt):
        self.prompts.append(prompt)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return mock.Mock(text=outcome)


def test_retries_rate_limits_with_exponential_backoff():
    sleeps = []
    model = FakeModel(ResourceExhausted("quota"), ResourceExhausted("quota"), "ok")

    result = generate_with_retry(model, "prompt", max_retries=3, sleep=sleeps.append)

    assert result.text == "ok"
    assert sleeps == [2, 4]
    assert len(model.prompts) == 3


def test_gives_up_after_max_attempts():
    sleeps = []
    model = FakeModel(*[ResourceExhausted("quota")] * 3)

    with pytest.raises(ResourceExhausted):
        generate_with_retry(model, "prompt", max_retries=3, sleep=sleeps.append)
    assert sleeps == [2, 4]


def test_other_errors_are_not_retried():
    sleeps = []
    model = FakeModel(InternalServerError("boom"), "never")

    with pytest.raises(InternalServerError):
        generate_with_retry(model, "prompt", sleep=sleeps.append)
    assert sleeps == []


def test_rate_limit_detection_from_message():
    assert is_rate_limited(RuntimeError("[429 Too Many Requests] Resource has been exhausted"))
    assert not is_rate_limited(RuntimeError("400 Bad Request"))


def test_build_prompt_embeds_schema_and_request():
    prompt = build_prompt("generate", "top customers", {"customers": [{"name": "id"}]})
    assert 'User Request: "top customers"' in prompt
    assert '"customers"' in prompt
    assert '{ "type": "line", "xKey": "date", "yKey": "sales" }' in prompt

    with pytest.raises(ValueError):
        build_prompt("summarize", "x", {})


def test_parse_generation_reads_fenced_json():
    text = '```json\n{"sql": "SELECT 1", "message": "Here you go", "action": "VIEW_VISUALIZER",' \
           ' "visualization": {"type": "bar", "xKey": "a", "yKey": "b"}}\n```'
    assert parse_generation(text) == {
        "sql": "SELECT 1",
        "message": "Here you go",
        "action": "VIEW_VISUALIZER",
        "visualization": {"type": "bar", "xKey": "a", "yKey": "b"},
    }


def test_parse_generation_falls_back_to_plain_sql():
    assert parse_generation("SELECT * FROM users") == {
        "sql": "SELECT * FROM users", "action": None, "message": FALLBACK_MESSAGE,
    }


def test_parse_generation_drops_unknown_actions():
    assert parse_generation(json.dumps({"sql": "", "message": "Hi!", "action": "DANCE"}))["action"] is None


def test_ai_route_generate(client, monkeypatch):
    model = FakeModel(json.dumps({"sql": "SELECT COUNT(*) FROM users", "message": "Here is the query", "action": None}))
    get_model = mock.Mock(return_value=model)
    monkeypatch.setattr(ai_routes, "get_model", get_model)

    response = client.post("/api/ai", json={"prompt": "how many users?", "schemaContext": {"users": []}})

    assert response.status_code == 200
    assert response.get_json() == {
        "success": True, "sql": "SELECT COUNT(*) FROM users", "message": "Here is the query", "action": None,
    }
    get_model.assert_called_once_with("test-key", "gemini-2.0-flash")


def test_ai_route_explain_returns_markdown(client, monkeypatch):
    monkeypatch.setattr(ai_routes, "get_model", mock.Mock(return_value=FakeModel("# Query Explanation\nIt counts.")))

    response = client.post("/api/ai", json={"prompt": "SELECT COUNT(*) FROM users", "mode": "explain"})

    assert response.get_json() == {"success": True, "explanation": "# Query Explanation\nIt counts."}


def test_ai_route_without_api_key(app, monkeypatch):
    app.config["GEMINI_API_KEY"] = None
    response = app.test_client().post("/api/ai", json={"prompt": "hello"})
    assert response.status_code == 500
    assert "GEMINI_API_KEY" in response.get_json()["message"]


def test_ai_route_reports_model_failure(client, monkeypatch):
    monkeypatch.setattr(ai_routes, "get_model", mock.Mock(return_value=FakeModel(InternalServerError("boom"))))
    response = client.post("/api/ai", json={"prompt": "hello"})
    assert response.status_code == 500
    assert response.get_json()["success"] is False


def test_ai_route_validates_input(client):
    assert client.post("/api/ai", json={"prompt": ""}).status_code == 400
    assert client.post("/api/ai", json={"prompt": "x", "mode": "poem"}).status_code == 400
