import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from api.auth import AuthContext, Authenticator
from api.deps import get_authenticator, get_programs, get_usage_limiter
from api.main import app
from api.usage_limits import UsageLimiter
from programs.form_agent.forms import ChatService, FormService
from programs.form_generator.program import AgentPrograms

USER = {"X-User-Id": "user_1"}


def _planner(**kwargs):
    return SimpleNamespace(
        title="Event RSVP",
        description="Let us know if you can come.",
        question_details_json=json.dumps([{"question_specs": "Will you attend? yes or no", "type": "singleChoice"}]),
        journey_script="",
    )


def _question_generator(**kwargs):
    return SimpleNamespace(
        question_json=json.dumps(
            {
                "title": "Will you attend?",
                "display": {"inputType": "radio"},
                "submissionBehavior": "autoAnswer",
                "validations": {"required": {"value": True, "originalText": "An answer is required"}},
                "options": [{"value": "yes", "label": "Yes"}, {"value": "no", "label": "No"}],
            }
        )
    )


def _reply_only(**kwargs):
    return SimpleNamespace(tool_name="none", tool_args_json="{}", reply="Hi! What form would you like?")


def _fake_programs() -> AgentPrograms:
    return AgentPrograms(
        planner=_planner,
        question_generator=_question_generator,
        question_repairer=lambda **kwargs: SimpleNamespace(repaired_question_json=""),
        tool_selector=_reply_only,
    )


@pytest.fixture
def limiter():
    return UsageLimiter(limit=5, window_sec=3600)


@pytest.fixture
def client(limiter):
    app.dependency_overrides[get_programs] = _fake_programs
    app.dependency_overrides[get_usage_limiter] = lambda: limiter
    app.dependency_overrides[get_authenticator] = lambda: Authenticator(
        verify_token=lambda token: AuthContext(user_id="token_user") if token == "good" else None,
        trust_user_header=True,
    )
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _ndjson(resp):
    return [json.loads(line) for line in resp.text.splitlines() if line.strip()]


def _published_form(repo, form_id="form_pub", questions=None):
    questions = questions or [
        {"id": "q1", "questionType": "text", "title": "Name"},
        {"id": "q2", "questionType": "rating", "title": "Score"},
    ]
    repo.insert_form({"id": form_id, "user_id": "user_1", "short_id": "abc1234", "current_published_version_id": "v_pub"})
    repo.insert_version(
        {"version_id": "v_pub", "form_id": form_id, "status": "published", "title": "Live", "questions": questions, "settings": {}}
    )
    return form_id


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_chat_requires_authentication(client):
    resp = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})
    assert resp.status_code == 401
    body = resp.json()
    assert body["ok"] is False
    assert body["error"] == "unauthorized"
    assert body["requestId"]


def test_bad_bearer_token_is_rejected(client):
    resp = client.get("/api/chat", params={"formId": "x"}, headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


def test_chat_validation_error_uses_envelope(client):
    resp = client.post("/api/chat", json={"messages": []}, headers=USER)
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"


def test_chat_streams_ndjson_and_persists_messages(client, _memory_store):
    resp = client.post(
        "/api/chat",
        json={"messages": [{"role": "user", "content": "hello"}], "formId": "form_chat01"},
        headers=USER,
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/x-ndjson")
    assert resp.headers["x-form-id"] == "form_chat01"
    assert resp.headers["cache-control"] == "no-cache, no-transform"

    frames = _ndjson(resp)
    assert frames[0] == {"kind": "chat_initialized", "formId": "form_chat01"}
    assert {"kind": "text", "text": "Hi! What form would you like?"} in frames
    assert frames[-1] == {"kind": "chat_completed", "formId": "form_chat01", "success": True}

    history = ChatService(_memory_store).get_chat_history("form_chat01")
    assert [(m["role"], m["content"]) for m in history] == [
        ("user", "hello"),
        ("assistant", "Hi! What form would you like?"),
    ]


def test_chat_streams_sse_when_requested(client):
    resp = client.post(
        "/api/chat",
        json={"messages": [{"role": "user", "content": "hello"}], "formId": "form_sse01"},
        headers={**USER, "Accept": "text/event-stream"},
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert "event: chat_initialized" in resp.text
    assert "event: chat_completed" in resp.text


def test_chat_allocates_form_id_when_missing(client, _memory_store):
    resp = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]}, headers=USER)
    form_id = resp.headers["x-form-id"]
    assert form_id
    assert _memory_store.get_form(form_id)["user_id"] == "user_1"


def test_chat_on_someone_elses_form_is_forbidden(client, _memory_store):
    FormService(_memory_store).ensure_form_exists("form_other", "user_2")
    resp = client.post(
        "/api/chat",
        json={"messages": [{"role": "user", "content": "hi"}], "formId": "form_other"},
        headers=USER,
    )
    assert resp.status_code == 403


def test_guest_without_form_is_usage_limited(client, limiter):
    limiter.limit = 0
    resp = client.post(
        "/api/chat",
        json={"messages": [{"role": "user", "content": "hi"}]},
        headers={**USER, "X-Guest": "1"},
    )
    assert resp.status_code == 403
    assert resp.json()["error"] == "usage_limit"


def test_chat_history_checks(client, _memory_store):
    assert client.get("/api/chat", headers=USER).status_code == 400
    assert client.get("/api/chat", params={"formId": "missing"}, headers=USER).status_code == 404

    FormService(_memory_store).ensure_form_exists("form_hist", "user_2")
    assert client.get("/api/chat", params={"formId": "form_hist"}, headers=USER).status_code == 403

    ChatService(_memory_store).save_message("form_hist", "user_2", role="user", content="first")
    resp = client.get("/api/chat", params={"formId": "form_hist"}, headers={"X-User-Id": "user_2"})
    assert resp.status_code == 200
    assert [m["content"] for m in resp.json()] == ["first"]


def test_bearer_token_user_is_used(client, _memory_store):
    FormService(_memory_store).ensure_form_exists("form_tok", "token_user")
    resp = client.get("/api/chat", params={"formId": "form_tok"}, headers={"Authorization": "Bearer good"})
    assert resp.status_code == 200


def test_create_form_from_prompt(client, _memory_store):
    resp = client.post("/api/forms/ignored", json={"userPrompt": "an RSVP form"}, headers=USER)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["title"] == "Event RSVP"
    assert body["form_id"] != "ignored"

    form = _memory_store.get_form(body["form_id"])
    assert form["current_draft_version_id"] == body["form_version_id"]
    version = _memory_store.get_version(body["form_version_id"])
    assert version["questions"][0]["readableValidations"] == ["An answer is required"]


def test_create_form_requires_prompt(client):
    resp = client.post("/api/forms/x", json={}, headers=USER)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Error, missing userPrompt"


def test_get_form_prefers_published(client, _memory_store):
    form_id = _published_form(_memory_store)
    resp = client.get(f"/api/forms/{form_id}")
    assert resp.status_code == 200
    body = resp.json()
    assert body["version_id"] == "v_pub"
    assert body["title"] == "Live"

    assert client.get("/api/forms/nope").status_code == 404


def test_get_form_falls_back_to_draft(client, _memory_store):
    FormService(_memory_store).ensure_form_exists("form_draft", "user_1")
    resp = client.get("/api/forms/form_draft")
    assert resp.status_code == 200
    assert resp.json()["questions"] == []


def test_patch_rejects_empty_updates(client, _memory_store):
    form_id = _published_form(_memory_store)
    resp = client.patch(f"/api/forms/{form_id}", json={"id": "other", "status": "draft"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "No updatable fields provided"


def test_patch_published_form_guards_structure(client, _memory_store):
    form_id = _published_form(_memory_store)
    resp = client.patch(
        f"/api/forms/{form_id}",
        json={"questions": [{"id": "q1", "questionType": "text", "title": "Name"}]},
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cannot add or remove questions on a published form."

    resp = client.patch(
        f"/api/forms/{form_id}",
        json={
            "title": "Live v2",
            "questions": [
                {"id": "q1", "questionType": "text", "title": "Full name"},
                {"id": "q2", "questionType": "rating", "title": "Score"},
            ],
        },
    )
    assert resp.status_code == 200
    assert _memory_store.get_version("v_pub")["title"] == "Live v2"
    assert _memory_store.get_version("v_pub")["status"] == "published"


def test_patch_missing_form_is_404(client):
    resp = client.patch("/api/forms/missing", json={"title": "x"})
    assert resp.status_code == 404


def test_patch_cannot_replace_published_questions_with_non_list(client, _memory_store):
    form_id = _published_form(_memory_store)
    before = _memory_store.get_version("v_pub")["questions"]
    resp = client.patch(f"/api/forms/{form_id}", json={"questions": {}})
    assert resp.status_code == 400
    assert resp.json()["error"] == "minor_update_rejected"
    assert _memory_store.get_version("v_pub")["questions"] == before


def test_patch_removing_one_of_five_published_questions(client, _memory_store):
    questions = [{"id": f"q{i}", "questionType": "text", "title": f"Question {i}"} for i in range(1, 6)]
    form_id = _published_form(_memory_store, questions=questions)
    resp = client.patch(f"/api/forms/{form_id}", json={"questions": questions[:4]})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cannot add or remove questions on a published form."
    assert len(_memory_store.get_version("v_pub")["questions"]) == 5


def test_user_header_is_not_trusted_by_default(client, monkeypatch):
    monkeypatch.delenv("FORMCRAFT_TRUST_USER_HEADER", raising=False)
    app.dependency_overrides[get_authenticator] = lambda: Authenticator(verify_token=lambda token: None)
    resp = client.get("/api/chat", params={"formId": "any"}, headers=USER)
    assert resp.status_code == 401


def test_user_header_is_trusted_when_enabled(client, monkeypatch, _memory_store):
    monkeypatch.setenv("FORMCRAFT_TRUST_USER_HEADER", "1")
    app.dependency_overrides[get_authenticator] = lambda: Authenticator(verify_token=lambda token: None)
    FormService(_memory_store).ensure_form_exists("form_hdr", "user_1")
    resp = client.get("/api/chat", params={"formId": "form_hdr"}, headers=USER)
    assert resp.status_code == 200
