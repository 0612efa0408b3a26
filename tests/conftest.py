from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
import yaml

from sentinel.config import Config


def _base_config(tmp_path: Path) -> Dict[str, Any]:
    return {
        "system": {"log_file": str(tmp_path / "sentinel.log"), "log_level": "DEBUG"},
        "llm": {
            "url": "http://llm.test/api/generate",
            "model": "llama3",
            "temperature": 0.7,
            "timeout": 5,
            "max_history_messages": 0,
            "max_context_chars": 0,
        },
        "search": {"url": "http://search.test/", "timeout": 5, "cache_ttl": 300},
        "tools": {
            "read_max_chars": 0,
            "execute": {"enabled": True, "timeout": 10, "allowed_programs": []},
        },
        "tts": {
            "enabled": True,
            "audio_dir": str(tmp_path / "audio"),
            "player": "aplay",
            "poll_interval": 0,
            "artifact_timeout": 1.0,
            "stable_polls": 1,
        },
        "memory": {"path": str(tmp_path / "memory.json"), "persist_every_message": True},
        "conversation": {"transcript_path": str(tmp_path / "transcript.jsonl"), "resume": False},
    }


@pytest.fixture()
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """Write a config.yaml into tmp_path and load it; dotted overrides win."""

    def _make(overrides: Optional[Dict[str, Any]] = None) -> Config:
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(_base_config(tmp_path)))
        config = Config(str(path))
        for key, value in (overrides or {}).items():
            config.set(key, value)
        return config

    return _make


@pytest.fixture()
def config(make_config: Callable[..., Config]) -> Config:
    return make_config()


class FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, raises: Optional[Exception] = None) -> None:
        self._payload = payload
        self.status_code = status_code
        self._raises = raises

    def json(self) -> Any:
        if self._raises is not None:
            raise self._raises
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            import requests

            raise requests.HTTPError(f"HTTP {self.status_code}")


class ManualExecutor:
    """Collects submitted jobs so a test decides when (and in what order) they finish."""

    def __init__(self) -> None:
        self.pending: List[tuple] = []

    def submit(self, fn, *args) -> None:
        self.pending.append((fn, args))

    def names(self) -> List[str]:
        return [fn.__name__ for fn, _ in self.pending]

    def run(self, name: str) -> int:
        """Run (and remove) every pending job whose function name is ``name``."""
        matching = [job for job in self.pending if job[0].__name__ == name]
        self.pending = [job for job in self.pending if job[0].__name__ != name]
        for fn, args in matching:
            fn(*args)
        return len(matching)

    def shutdown(self, wait: bool = True) -> None:
        pass
