from __future__ import annotations

from typing import Any, Dict, List

import pytest
import requests

from sentinel.conversation import Message
from sentinel.llm_client import (
    GenerationClient,
    GenerationConnectionError,
    GenerationDecodeError,
    GenerationServiceError,
    MalformedResponseError,
)
from sentinel.persona import AgentId, get_agent

from conftest import FakeResponse


HISTORY = [
    Message(role="system", content="MISSION: be useful"),
    Message(role="user", content="hello"),
]


@pytest.fixture()
def client(config) -> GenerationClient:
    return GenerationClient(config)


def _reply_with(monkeypatch, response: FakeResponse) -> List[Dict[str, Any]]:
    calls: List[Dict[str, Any]] = []

    def fake_post(url, json=None, timeout=None):
        calls.append({"url": url, "json": json, "timeout": timeout})
        return response

    monkeypatch.setattr(requests, "post", fake_post)
    return calls


def test_prompt_layout() -> None:
    agent = get_agent(AgentId.AURORA)

    prompt = GenerationClient.build_prompt(agent, HISTORY)

    assert prompt == (
        f"System Persona: {agent.persona}\n"
        "\n"
        "--- Conversation Log ---\n"
        "system: MISSION: be useful\n"
        "user: hello\n"
        "\n"
        "--- Your Turn (Aurora) ---\n"
    )


def test_generate_success(client: GenerationClient, monkeypatch) -> None:
    calls = _reply_with(monkeypatch, FakeResponse({"response": "  Hello, Aurora here.  ", "eval_count": 7}))

    text = client.generate(get_agent(AgentId.AURORA), HISTORY)

    assert text == "Hello, Aurora here."
    payload = calls[0]["json"]
    assert calls[0]["url"] == "http://llm.test/api/generate"
    assert payload["model"] == "llama3"
    assert payload["stream"] is False
    assert payload["options"] == {"temperature": 0.7}
    assert payload["prompt"].endswith("--- Your Turn (Aurora) ---\n")
    assert client.call_count == 1
    assert client.last_call_info["eval_count"] == 7


def test_connection_failure(client: GenerationClient, monkeypatch) -> None:
    def fake_post(*args, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(requests, "post", fake_post)

    with pytest.raises(GenerationConnectionError, match="LLM connection error"):
        client.generate(get_agent(AgentId.ETHER), HISTORY)


def test_decode_failure(client: GenerationClient, monkeypatch) -> None:
    _reply_with(monkeypatch, FakeResponse(raises=ValueError("Expecting value")))

    with pytest.raises(GenerationDecodeError, match="LLM decode error"):
        client.generate(get_agent(AgentId.ETHER), HISTORY)


def test_service_error_field(client: GenerationClient, monkeypatch) -> None:
    _reply_with(monkeypatch, FakeResponse({"error": "model 'llama3' not found"}, status_code=404))

    with pytest.raises(GenerationServiceError, match="LLM API error: model 'llama3' not found"):
        client.generate(get_agent(AgentId.ETHER), HISTORY)


def test_http_error_status(client: GenerationClient, monkeypatch) -> None:
    _reply_with(monkeypatch, FakeResponse({"detail": "overloaded"}, status_code=503))

    with pytest.raises(GenerationServiceError, match="HTTP 503"):
        client.generate(get_agent(AgentId.ETHER), HISTORY)


@pytest.mark.parametrize("payload", [{"done": True}, {"response": 42}, ["not", "a", "dict"]])
def test_malformed_response(client: GenerationClient, monkeypatch, payload: Any) -> None:
    _reply_with(monkeypatch, FakeResponse(payload))

    with pytest.raises(MalformedResponseError, match="LLM response invalid"):
        client.generate(get_agent(AgentId.ETHER), HISTORY)
