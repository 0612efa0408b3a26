"""
Sentinel configuration

One YAML document, one section per component (llm, search, tools, tts,
memory, conversation, ui). A ``.env`` file sitting beside the YAML is loaded
into the environment first, so values such as ``$OLLAMA_HOST`` or ``~/...``
resolve when the file is read. The resulting ``Config`` is built once by the
entry point and handed to every component.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv


DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"

# Settings that name a directory, and settings that name a file whose parent must exist
RUNTIME_DIRS = ("system.storage_path", "tts.audio_dir")
RUNTIME_FILES = ("system.log_file", "memory.path", "conversation.transcript_path", "ui.input_history")


def _expand(value: Any) -> Any:
    """Expand ~ and $VARS in every string of a loaded YAML tree."""
    if isinstance(value, str):
        return os.path.expandvars(os.path.expanduser(value))
    if isinstance(value, dict):
        return {key: _expand(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand(item) for item in value]
    return value


class Config:
    """Dot-notation view over the loaded settings"""

    def __init__(self, config_path: Optional[str] = None):
        """
        Read settings from disk

        Args:
            config_path: YAML file to load (default: config.yaml at the project root)

        Raises:
            FileNotFoundError: the YAML file does not exist
        """
        self.path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

        dotenv_file = self.path.parent / ".env"
        if dotenv_file.is_file():
            load_dotenv(dotenv_file, override=True)

        if not self.path.is_file():
            raise FileNotFoundError(f"Config file not found: {self.path}")

        with open(self.path, 'r', encoding='utf-8') as f:
            self._settings: Dict[str, Any] = _expand(yaml.safe_load(f) or {})

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Look up a setting by dotted path

        Example:
            config.get("tts.player", "aplay")
        """
        node: Any = self._settings
        for part in key_path.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key_path: str, value: Any) -> None:
        """Override a setting, creating intermediate sections as needed."""
        *parents, leaf = key_path.split('.')
        node = self._settings
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[leaf] = value

    def section(self, name: str) -> Dict[str, Any]:
        """A top-level section as a dict (empty when absent)."""
        value = self._settings.get(name)
        return dict(value) if isinstance(value, dict) else {}

    def ensure_directories(self) -> None:
        """Create the directories the runtime writes into"""
        for key in RUNTIME_DIRS:
            if self.get(key):
                Path(self.get(key)).mkdir(parents=True, exist_ok=True)
        for key in RUNTIME_FILES:
            if self.get(key):
                Path(self.get(key)).parent.mkdir(parents=True, exist_ok=True)


def load_config(config_path: Optional[str] = None) -> Config:
    """Load a configuration object. Callers pass it on explicitly."""
    return Config(config_path)
