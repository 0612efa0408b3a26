"""
Generation Client

Builds a single prompt from an agent's persona and the rolling transcript,
then asks an Ollama-style ``/api/generate`` endpoint for one non-streaming
completion. Failures are raised as a ``GenerationError`` subclass naming what
went wrong. There is no retry: the caller surfaces the error once.
"""

from typing import Iterable

import requests

from sentinel.conversation import Message
from sentinel.logger import get_logger
from sentinel.persona import Agent, display_name


class GenerationError(Exception):
    """Base class for classified generation failures."""


class GenerationConnectionError(GenerationError):
    """The service could not be reached or timed out."""


class GenerationDecodeError(GenerationError):
    """The response body was not JSON."""


class GenerationServiceError(GenerationError):
    """The service answered with an error."""


class MalformedResponseError(GenerationError):
    """JSON arrived but without a usable ``response`` string."""


class GenerationClient:
    """Single-shot completion client for the two agents"""

    def __init__(self, config):
        self.config = config
        self.logger = get_logger(__name__, config)

        self.url = config.get("llm.url", "http://localhost:11434/api/generate")
        self.model = config.get("llm.model", "llama3")
        self.temperature = config.get("llm.temperature", 0.7)
        self.timeout = config.get("llm.timeout", 120)

        self.call_count = 0
        self.last_call_info = None

        self.logger.info(f"Generation client initialized (model={self.model}, url={self.url})")

    @staticmethod
    def build_prompt(agent: Agent, history: Iterable[Message]) -> str:
        """Persona, then the transcript, then a turn marker naming the agent."""
        lines = [f"System Persona: {agent.persona}", "", "--- Conversation Log ---"]
        for msg in history:
            lines.append(f"{msg.role}: {msg.content}")
        lines.append("")
        lines.append(f"--- Your Turn ({display_name(agent.id.value)}) ---")
        return "\n".join(lines) + "\n"

    def generate(self, agent: Agent, history: Iterable[Message]) -> str:
        """
        Request a reply for ``agent``

        Returns:
            The trimmed completion text

        Raises:
            GenerationError: one of the classified subclasses
        """
        prompt = self.build_prompt(agent, history)
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": self.temperature},
        }

        self.call_count += 1
        self.logger.debug(f"Generating for {agent.name} ({len(prompt)} prompt chars)")

        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise GenerationConnectionError(f"LLM connection error: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise GenerationDecodeError(f"LLM decode error: {e}") from e

        if not isinstance(data, dict):
            raise MalformedResponseError("LLM response invalid")

        if "error" in data:
            raise GenerationServiceError(f"LLM API error: {data['error']}")

        if response.status_code >= 400:
            raise GenerationServiceError(f"LLM API error: HTTP {response.status_code}")

        text = data.get("response")
        if not isinstance(text, str):
            raise MalformedResponseError("LLM response invalid")

        self.last_call_info = {
            "agent": agent.id.value,
            "prompt_chars": len(prompt),
            "eval_count": data.get("eval_count"),
        }
        return text.strip()
