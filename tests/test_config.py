from __future__ import annotations

import logging
from pathlib import Path

import pytest

from sentinel import persona
from sentinel.config import DEFAULT_CONFIG_PATH, Config, load_config
from sentinel.logger import LoggingSetupError, get_logger, setup_logging


def test_dot_notation_get_and_set(config) -> None:
    assert config.get("llm.model") == "llama3"
    assert config.get("search.cache_ttl") == 300
    assert config.get("llm.missing", "fallback") == "fallback"

    config.set("ui.colors.ether", "blue")

    assert config.get("ui.colors") == {"ether": "blue"}
    assert config.section("ui") == {"colors": {"ether": "blue"}}
    assert config.section("absent") == {}


def test_env_and_home_expansion(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("SENTINEL_TEST_DIR", str(tmp_path))
    path = tmp_path / "config.yaml"
    path.write_text("memory:\n  path: $SENTINEL_TEST_DIR/memory.json\nui:\n  input_history: ~/hist\n")

    config = Config(str(path))

    assert config.get("memory.path") == f"{tmp_path}/memory.json"
    assert not config.get("ui.input_history").startswith("~")


def test_dotenv_next_to_config_is_loaded(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("SENTINEL_MODEL", "unset")
    (tmp_path / ".env").write_text("SENTINEL_MODEL=mistral\n")
    path = tmp_path / "config.yaml"
    path.write_text("llm:\n  model: ${SENTINEL_MODEL}\n")

    assert Config(str(path)).get("llm.model") == "mistral"


def test_missing_config_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "absent.yaml"))


def test_shipped_config_loads() -> None:
    config = Config()

    assert config.path == DEFAULT_CONFIG_PATH
    assert config.get("llm.url") == "http://localhost:11434/api/generate"
    assert set(config.get("tts.voices")) == {"ether", "aurora"}


def test_ensure_directories(make_config, tmp_path: Path) -> None:
    config = make_config({
        "system.storage_path": str(tmp_path / "store"),
        "memory.path": str(tmp_path / "deep" / "memory.json"),
    })

    config.ensure_directories()

    assert (tmp_path / "store").is_dir()
    assert (tmp_path / "audio").is_dir()
    assert (tmp_path / "deep").is_dir()


def test_logging_writes_to_file(config, tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("SENTINEL_LOG_FILE_ONLY", "1")
    handler = setup_logging(config)
    try:
        get_logger("tests.logging", config).warning("hello log")
        handler.flush()
    finally:
        logging.getLogger("sentinel").removeHandler(handler)
        handler.close()

    assert "hello log" in (tmp_path / "sentinel.log").read_text()


def test_logging_unwritable_file(make_config, tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    config = make_config({"system.log_file": str(blocker / "sentinel.log")})

    with pytest.raises(LoggingSetupError):
        setup_logging(config)


def test_get_logger_prefixes_root() -> None:
    assert get_logger("pipeline").name == "sentinel.pipeline"
    assert get_logger("sentinel.tools").name == "sentinel.tools"


def test_agents_alternate_and_resolve_names() -> None:
    assert persona.AgentId.ETHER.other is persona.AgentId.AURORA
    assert persona.AgentId.AURORA.other is persona.AgentId.ETHER
    assert persona.get_agent("aurora").name == "Aurora"
    assert persona.display_name("ether") == "Ether"
    assert persona.display_name("user") == "User"


def test_opening_line_belongs_to_opening_speaker() -> None:
    assert persona.OPENING_SPEAKER is persona.AgentId.ETHER
    assert "[TOOL:SEARCH:principles of polymorphic code generation]" in persona.OPENING_LINE
