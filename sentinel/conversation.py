"""
Conversation Store

Holds the shared, append-only message history that both agents read from
and the persisted key-value memory blob. All mutation goes through one lock,
the same lock load and save use.

Memory is written wholesale: a snapshot goes to a temp file in the target
directory and is renamed over the old file, so a reader never sees a
half-written JSON document. The file holds the caller's mapping under
``memory`` with the history alongside it, never mixed into the mapping:

    {"memory": {...}, "history": [{"role": ..., "content": ...}], "updated_at": ...}
"""

import json
import os
import tempfile
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from sentinel.logger import get_logger


TOOL_RESULT_TAG = "[TOOL_RESULT]"


@dataclass(frozen=True)
class Message:
    role: str
    content: str

    @property
    def is_tool_result(self) -> bool:
        return self.role == "system" and self.content.startswith(TOOL_RESULT_TAG)


class ConversationStore:
    """Ordered history plus persisted memory"""

    def __init__(self, config, seed: Optional[List[Message]] = None):
        """
        Initialize the store

        Args:
            config: Configuration object
            seed: Messages the conversation opens with (mission, opening line)
        """
        self.config = config
        self.logger = get_logger(__name__, config)

        self.memory_path = Path(config.get("memory.path", "memory.json"))
        self.persist_every_message = config.get("memory.persist_every_message", True)

        transcript = config.get("conversation.transcript_path")
        self.transcript_path = Path(transcript) if transcript else None

        self._lock = threading.Lock()
        self._history: List[Message] = []
        self.memory: Dict[str, Any] = {}
        self._saved_history: List[Any] = []
        self.seed_count = 0

        self.load()

        if config.get("conversation.resume", False) and self._restore_history():
            self.logger.info(f"Resumed {len(self._history)} messages from memory snapshot")
        else:
            for message in seed or []:
                self._append(message)
            self.seed_count = len(self._history)

    # ----- history -----

    @property
    def history(self) -> List[Message]:
        """Snapshot copy of the history, safe to hand to another thread."""
        with self._lock:
            return list(self._history)

    def __len__(self) -> int:
        with self._lock:
            return len(self._history)

    def append(self, role: str, content: str) -> Message:
        """Append a message. Persists memory when configured to."""
        message = Message(role=role, content=content)
        self._append(message)
        if self.persist_every_message:
            self.save()
        return message

    def _append(self, message: Message) -> None:
        with self._lock:
            self._history.append(message)
        self._append_to_transcript(message)
        self.logger.debug(f"Added {message.role} message: {message.content[:50]}...")

    def _append_to_transcript(self, message: Message) -> None:
        """Append message to JSONL transcript file"""
        if self.transcript_path is None:
            return
        record = {"timestamp": time.time(), **asdict(message)}
        try:
            with open(self.transcript_path, 'a', encoding='utf-8') as f:
                f.write(json.dumps(record, ensure_ascii=False) + '\n')
        except OSError as e:
            self.logger.error(f"Failed to append to transcript: {e}")

    def _restore_history(self) -> bool:
        restored = [
            Message(role=str(item["role"]), content=str(item["content"]))
            for item in self._saved_history
            if isinstance(item, dict) and "role" in item and "content" in item
        ]
        if not restored:
            return False
        with self._lock:
            self._history = restored
        return True

    def window(self, max_messages: int = 0, max_chars: int = 0) -> List[Message]:
        """
        History as rendered into a prompt

        Keeps the seed messages, then the most recent messages that fit both
        budgets, with one system marker standing in for the omitted middle.
        A budget of 0 means unbounded.
        """
        history = self.history
        head = history[:self.seed_count]
        tail = history[self.seed_count:]

        kept: List[Message] = []
        total_chars = sum(len(m.content) for m in head)
        # Work backwards to keep most recent messages
        for msg in reversed(tail):
            if max_messages and len(kept) >= max_messages:
                break
            if max_chars and total_chars + len(msg.content) > max_chars and kept:
                break
            total_chars += len(msg.content)
            kept.insert(0, msg)

        omitted = len(tail) - len(kept)
        if omitted:
            marker = Message(role="system", content=f"[... {omitted} earlier messages omitted ...]")
            return head + [marker] + kept
        return head + kept

    # ----- memory -----

    def load(self) -> Dict[str, Any]:
        """Load memory from disk. A missing or unreadable file yields {}."""
        with self._lock:
            try:
                with open(self.memory_path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except FileNotFoundError:
                data = {}
            except (OSError, ValueError) as e:
                self.logger.error(f"Failed to load memory from {self.memory_path}: {e}")
                data = {}

            if not isinstance(data, dict):
                self.logger.error(f"Memory file {self.memory_path} is not a JSON object, ignoring")
                data = {}

            if isinstance(data.get("memory"), dict):
                self.memory = data["memory"]
                saved = data.get("history")
                self._saved_history = saved if isinstance(saved, list) else []
            else:
                # Bare mapping, e.g. written by hand
                self.memory = data
                self._saved_history = []
            return dict(self.memory)

    def save(self) -> bool:
        """Write the memory snapshot atomically. Failures are logged only."""
        with self._lock:
            snapshot = {
                "memory": self.memory,
                "history": [asdict(m) for m in self._history],
                "updated_at": time.time(),
            }
            try:
                payload = json.dumps(snapshot, indent=2, ensure_ascii=False)
            except (TypeError, ValueError) as e:
                self.logger.error(f"Memory is not JSON-serializable: {e}")
                return False

            directory = self.memory_path.parent
            tmp_name = None
            try:
                directory.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile(
                    'w', encoding='utf-8', dir=directory,
                    prefix=f".{self.memory_path.name}.", suffix=".tmp", delete=False,
                ) as tmp:
                    tmp_name = tmp.name
                    tmp.write(payload)
                    tmp.flush()
                    os.fsync(tmp.fileno())
                os.replace(tmp_name, self.memory_path)
            except OSError as e:
                self.logger.error(f"Failed to save memory to {self.memory_path}: {e}")
                if tmp_name and os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                return False

        return True

    def remember(self, key: str, value: Any) -> None:
        with self._lock:
            self.memory[key] = value

    def recall(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self.memory.get(key, default)
