"""
Unit tests for the OpenAI REST client.
"""
import json

import pytest
import requests

from core.config import Settings
from core.exceptions import ConfigurationError, LLMError, MalformedResponseError
from llm import client as client_module
from llm.client import OpenAIClientWrapper, extract_message_content


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code
        self.text = payload if isinstance(payload, str) else json.dumps(payload)

    def json(self):
        if isinstance(self.payload, str):
            return json.loads(self.payload)
        return self.payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)


def chat_reply(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.fixture
def client(settings):
    return OpenAIClientWrapper(settings)


@pytest.fixture
def post_calls(monkeypatch):
    """Patch requests.post with a queue of canned responses."""
    calls = []
    responses = []

    def fake_post(url, **kwargs):
        calls.append({"url": url, **kwargs})
        result = responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    monkeypatch.setattr(client_module.requests, "post", fake_post)
    return calls, responses


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ConfigurationError):
        OpenAIClientWrapper(Settings(_env_file=None))


def test_extract_choices_envelope():
    assert extract_message_content(chat_reply("hello")) == "hello"


def test_extract_output_envelope():
    data = {
        "output": [
            {"type": "reasoning"},
            {
                "type": "message",
                "role": "assistant",
                "content": [{"type": "output_text", "text": "from output"}],
            },
        ]
    }
    assert extract_message_content(data) == "from output"


def test_extract_missing_content():
    assert extract_message_content({"choices": []}) is None
    assert extract_message_content({}) is None


def test_complete_returns_raw_text(client, post_calls):
    calls, responses = post_calls
    responses.append(FakeResponse(chat_reply('```json\n{"a": 1}\n```')))

    text = client.complete("prompt", system_prompt="system")

    assert text == '```json\n{"a": 1}\n```'
    payload = json.loads(calls[0]["data"])
    assert payload["model"] == "gpt-4o-mini"
    assert payload["messages"] == [
        {"role": "system", "content": "system"},
        {"role": "user", "content": "prompt"},
    ]
    assert payload["response_format"] == {"type": "json_object"}
    assert payload["temperature"] == 0.1
    assert calls[0]["headers"]["Authorization"] == "Bearer test-key"
    assert calls[0]["timeout"] == 120


def test_reasoning_models_omit_temperature(settings):
    settings = settings.model_copy(update={"openai_model": "o3-mini", "openai_timeout": 0})
    wrapper = OpenAIClientWrapper(settings)
    assert "temperature" not in wrapper.build_payload("p", None, 0.1)
    assert wrapper.timeout is None


def test_http_error(client, post_calls):
    _, responses = post_calls
    responses.append(FakeResponse({"error": {"message": "bad key"}}, status_code=401))
    with pytest.raises(LLMError) as exc_info:
        client.complete("prompt")
    assert exc_info.value.details["status_code"] == 401


def test_timeout(client, post_calls):
    _, responses = post_calls
    responses.append(requests.exceptions.Timeout("slow"))
    with pytest.raises(LLMError):
        client.complete("prompt")


def test_connection_error(client, post_calls):
    _, responses = post_calls
    responses.append(requests.exceptions.ConnectionError("down"))
    with pytest.raises(LLMError):
        client.complete("prompt")


def test_invalid_json_body(client, post_calls):
    _, responses = post_calls
    responses.append(FakeResponse("<html>gateway</html>"))
    with pytest.raises(LLMError):
        client.complete("prompt")


def test_error_field_in_body(client, post_calls):
    _, responses = post_calls
    responses.append(FakeResponse({"error": "quota exceeded"}))
    with pytest.raises(LLMError):
        client.complete("prompt")


def test_empty_content_is_malformed(client, post_calls):
    _, responses = post_calls
    responses.append(FakeResponse(chat_reply("   ")))
    with pytest.raises(MalformedResponseError):
        client.complete("prompt")
