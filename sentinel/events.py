"""
Event types consumed by the turn controller.

Every unit of background work reports back with exactly one of these.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Optional

from sentinel.persona import AgentId


class EventType(Enum):
    USER_SUBMIT = auto()
    GENERATION_RESULT = auto()
    TOOL_RESULT = auto()
    SPEECH_DONE = auto()
    QUIT = auto()


class SystemState(Enum):
    """What the previous actor is doing, which gates the next expected event."""

    THINKING = "thinking"
    SPEAKING = "speaking"
    EXECUTING_TOOL = "executing_tool"


@dataclass
class Event:
    type: EventType
    data: Any = None
    source: str = ""


@dataclass(frozen=True)
class GenerationResult:
    agent: AgentId
    cycle: int
    text: str = ""
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ToolResult:
    cycle: int
    text: str


@dataclass(frozen=True)
class SpeechDone:
    agent: AgentId
    cycle: int
    played: bool = field(default=True, compare=False)
