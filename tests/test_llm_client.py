import http.client
import io
import json
from urllib.error import HTTPError, URLError

import pytest

from stepwright.agent.models import Message
from stepwright.agent.protocol import decision_schema
from stepwright.errors import ModelAuthError, ModelError, ModelResponseError
from stepwright.llm.client import LLMClient

DECISION_TEXT = (
    '{"completed":false,"operation":"SCAN_PROJECT","path":"**/*","fileContent":null,'
    '"command":null,"explanation":"Look around"}'
)


class FakeResponse:
    def __init__(self, body: bytes) -> None:
        self.body = body

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return None

    def read(self):
        return self.body


def _conversation() -> list[Message]:
    return [
        Message(role="user", content="add a favorites page"),
        Message(role="assistant", content=DECISION_TEXT),
        Message(role="user", content='{"success":true,"path":"**/*","directoryList":[]}'),
    ]


def _call(client: LLMClient) -> str:
    return client.next_decision(
        _conversation(),
        system_instruction="be careful",
        output_schema=decision_schema(),
    )


def test_payload_sends_system_prompt_and_full_conversation() -> None:
    client = LLMClient(api_key="key", model="gpt-4.1")

    payload = client._build_payload(_conversation(), "be careful", decision_schema())

    assert payload["model"] == "gpt-4.1"
    assert payload["input"] == [
        {"role": "system", "content": "be careful"},
        {"role": "user", "content": "add a favorites page"},
        {"role": "assistant", "content": DECISION_TEXT},
        {"role": "user", "content": '{"success":true,"path":"**/*","directoryList":[]}'},
    ]
    text_format = payload["text"]["format"]
    assert text_format["type"] == "json_schema"
    assert text_format["name"] == "agent_step"
    assert text_format["strict"] is True
    assert text_format["schema"] == decision_schema()
    assert "reasoning" not in payload


def test_payload_includes_reasoning_effort_when_configured() -> None:
    client = LLMClient(api_key="key", model="gpt-5.2", reasoning_effort="medium")

    payload = client._build_payload([], "be careful", decision_schema())

    assert payload["reasoning"] == {"effort": "medium"}


def test_extract_output_text_prefers_top_level_field() -> None:
    assert LLMClient._extract_output_text({"output_text": DECISION_TEXT}) == DECISION_TEXT


def test_extract_output_text_from_content_items() -> None:
    payload = {
        "output": [
            {"type": "reasoning", "summary": []},
            {"content": [{"type": "output_text", "text": DECISION_TEXT}]},
        ]
    }

    assert LLMClient._extract_output_text(payload) == DECISION_TEXT


def test_extract_output_text_raises_on_refusal_or_missing_output() -> None:
    with pytest.raises(ModelResponseError, match="refused"):
        LLMClient._extract_output_text(
            {"output": [{"content": [{"type": "refusal", "refusal": "no"}]}]}
        )
    with pytest.raises(ModelResponseError, match="No structured output"):
        LLMClient._extract_output_text(
            {"output": [{"content": [{"type": "reasoning", "text": "ignored"}]}]}
        )


def test_next_decision_without_key_fails_before_network(monkeypatch) -> None:
    def fail_urlopen(*_args, **_kwargs):
        raise AssertionError("network must not be used")

    monkeypatch.setattr("stepwright.llm.client.request.urlopen", fail_urlopen)

    with pytest.raises(ModelAuthError):
        _call(LLMClient(api_key=None, model="gpt-4.1"))


def test_next_decision_posts_request_and_returns_text(monkeypatch) -> None:
    captured = {}

    def fake_urlopen(req, timeout):
        captured["request"] = req
        captured["timeout"] = timeout
        return FakeResponse(json.dumps({"output_text": DECISION_TEXT}).encode("utf-8"))

    monkeypatch.setattr("stepwright.llm.client.request.urlopen", fake_urlopen)

    client = LLMClient(api_key="secret", model="gpt-4.1", api_url="https://example.com/v1/responses", timeout=30.0)
    text = _call(client)

    assert text == DECISION_TEXT
    req = captured["request"]
    assert req.full_url == "https://example.com/v1/responses"
    assert req.get_method() == "POST"
    assert req.get_header("Authorization") == "Bearer secret"
    assert json.loads(req.data.decode("utf-8"))["model"] == "gpt-4.1"
    assert captured["timeout"] == 30.0


def test_http_error_is_retryable_model_error(monkeypatch) -> None:
    def fake_urlopen(*_args, **_kwargs):
        raise HTTPError(
            url="https://example.com",
            code=503,
            msg="Service Unavailable",
            hdrs=None,
            fp=None,
        )

    monkeypatch.setattr("stepwright.llm.client.request.urlopen", fake_urlopen)

    with pytest.raises(ModelError, match="HTTP 503") as excinfo:
        _call(LLMClient(api_key="key", model="gpt-4.1"))
    assert not isinstance(excinfo.value, ModelAuthError)


def test_rejected_credentials_raise_auth_error(monkeypatch) -> None:
    def fake_urlopen(*_args, **_kwargs):
        raise HTTPError(url="https://example.com", code=401, msg="Unauthorized", hdrs=None, fp=None)

    monkeypatch.setattr("stepwright.llm.client.request.urlopen", fake_urlopen)

    with pytest.raises(ModelAuthError, match="HTTP 401"):
        _call(LLMClient(api_key="bad", model="gpt-4.1"))


def test_http_error_includes_response_excerpt(monkeypatch) -> None:
    class FakeHTTPError(HTTPError):
        def __init__(self):
            super().__init__(
                url="https://example.com",
                code=400,
                msg="Bad Request",
                hdrs=None,
                fp=io.BytesIO(b'{"error":{"message":"invalid schema"}}'),
            )

    def fake_urlopen(*_args, **_kwargs):
        raise FakeHTTPError()

    monkeypatch.setattr("stepwright.llm.client.request.urlopen", fake_urlopen)

    with pytest.raises(ModelError) as excinfo:
        _call(LLMClient(api_key="key", model="gpt-4.1"))

    assert "HTTP 400" in str(excinfo.value)
    assert "invalid schema" in str(excinfo.value)


def test_transport_error_is_model_error(monkeypatch) -> None:
    def fake_urlopen(*_args, **_kwargs):
        raise URLError("connection refused")

    monkeypatch.setattr("stepwright.llm.client.request.urlopen", fake_urlopen)

    with pytest.raises(ModelError, match="transport error"):
        _call(LLMClient(api_key="key", model="gpt-4.1"))


class TruncatedResponse(FakeResponse):
    def read(self):
        raise http.client.IncompleteRead(b"{\"output_te")


def test_truncated_body_is_model_error(monkeypatch) -> None:
    monkeypatch.setattr(
        "stepwright.llm.client.request.urlopen", lambda *_a, **_k: TruncatedResponse(b"")
    )

    with pytest.raises(ModelError, match="IncompleteRead"):
        _call(LLMClient(api_key="key", model="gpt-4.1"))


def test_connection_reset_is_model_error(monkeypatch) -> None:
    def fake_urlopen(*_args, **_kwargs):
        raise ConnectionResetError(104, "Connection reset by peer")

    monkeypatch.setattr("stepwright.llm.client.request.urlopen", fake_urlopen)

    with pytest.raises(ModelError, match="ConnectionResetError"):
        _call(LLMClient(api_key="key", model="gpt-4.1"))


def test_invalid_json_response_is_response_error(monkeypatch) -> None:
    monkeypatch.setattr(
        "stepwright.llm.client.request.urlopen", lambda *_a, **_k: FakeResponse(b"not-json")
    )

    with pytest.raises(ModelResponseError, match="parsing error"):
        _call(LLMClient(api_key="key", model="gpt-4.1"))
