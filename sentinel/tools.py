"""
Tool Dispatcher

Executes the side effect named by a parsed tool directive and returns its
outcome as plain text. Every failure is folded into the returned string:
the conversation records what was attempted, and nothing here raises to the
turn controller.

Tools:
    SEARCH     instant-answer lookup (DuckDuckGo API)
    READFILE   read a local file
    WRITEFILE  write a local file ("path,content", literal \\n unescaped)
    EXECUTE    spawn a program, arguments split on whitespace, no shell
"""

import subprocess
import threading
import time
from pathlib import Path
from typing import List, Optional

import requests

from sentinel.logger import get_logger
from sentinel.tool_protocol import (
    INVALID_WRITEFILE,
    Directive,
    MalformedDirective,
    ToolCall,
    ToolKind,
    directive_from_parts,
)


NO_SEARCH_RESULT = "No specific result found, please broaden the query."
DEFAULT_SEARCH_URL = "https://api.duckduckgo.com/"


class _TTLCache:
    """Simple thread-safe TTL cache."""

    def __init__(self, ttl_seconds: float):
        self._ttl = ttl_seconds
        self._data: dict = {}
        self._lock = threading.Lock()

    def get(self, key: str):
        with self._lock:
            entry = self._data.get(key)
            if entry and (time.time() - entry[1]) < self._ttl:
                return entry[0]
            self._data.pop(key, None)
            return None

    def put(self, key: str, value):
        with self._lock:
            self._data[key] = (value, time.time())

    def clear(self):
        with self._lock:
            self._data.clear()


class ExecutionPolicy:
    """Gate in front of EXECUTE.

    Kept apart from the dispatcher so sandboxing rules can change without
    touching the tool contract. An empty allow-list admits every program.
    """

    def __init__(self, enabled: bool = True, allowed_programs: Optional[List[str]] = None):
        self.enabled = enabled
        self.allowed_programs = set(allowed_programs or [])

    @classmethod
    def from_config(cls, config) -> "ExecutionPolicy":
        return cls(
            enabled=bool(config.get("tools.execute.enabled", True)),
            allowed_programs=config.get("tools.execute.allowed_programs") or [],
        )

    def check(self, argv: List[str]) -> Optional[str]:
        """Return a refusal reason, or None when the command may run."""
        if not self.enabled:
            return "Command execution is disabled by configuration."
        if self.allowed_programs and Path(argv[0]).name not in self.allowed_programs:
            return f"Command blocked by execution policy: {argv[0]}"
        return None


class ToolDispatcher:
    """Runs exactly one tool per call and reports the outcome as text."""

    def __init__(self, config, policy: Optional[ExecutionPolicy] = None):
        self.config = config
        self.logger = get_logger(__name__, config)

        self.search_url = config.get("search.url", DEFAULT_SEARCH_URL)
        self.search_timeout = config.get("search.timeout", 10)
        self._search_cache = _TTLCache(ttl_seconds=config.get("search.cache_ttl", 300))

        self.read_max_chars = config.get("tools.read_max_chars", 0)
        self.execute_timeout = config.get("tools.execute.timeout", 60)
        self.policy = policy or ExecutionPolicy.from_config(config)

        if self.policy.enabled:
            self.logger.warning("EXECUTE tool is enabled: agents may spawn processes")

    # ----- entry points -----

    def dispatch(self, directive: Directive) -> str:
        """Execute a parsed directive and return its result text."""
        if isinstance(directive, MalformedDirective):
            self.logger.warning(f"Malformed tool directive {directive.directive!r}: {directive.reason}")
            return directive.reason

        handlers = {
            ToolKind.SEARCH: self.search,
            ToolKind.READFILE: self.read_file,
            ToolKind.WRITEFILE: self.write_file,
            ToolKind.EXECUTE: self.execute,
        }
        self.logger.info(f"Tool call: {directive.kind.value} {directive.argument[:80]!r}")
        try:
            return handlers[directive.kind](directive.argument)
        except Exception as e:
            self.logger.error(f"Tool {directive.kind.value} crashed: {e}", exc_info=True)
            return f"Tool {directive.kind.value} failed: {e}"

    def dispatch_parts(self, kind: str, argument: str) -> str:
        """Dispatch from a raw ``(kind, argument)`` pair."""
        return self.dispatch(directive_from_parts(kind, argument))

    # ----- tools -----

    def search(self, query: str) -> str:
        """Look up a short summary for ``query``."""
        query = query.strip()
        cached = self._search_cache.get(query)
        if cached is not None:
            self.logger.debug(f"Search cache hit: {query!r}")
            return cached

        try:
            resp = requests.get(
                self.search_url,
                params={"q": query, "format": "json", "no_html": 1},
                timeout=self.search_timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            self.logger.error(f"Web search failed: {e}")
            return f"Search failed: {e}"

        abstract = data.get("AbstractText", "") if isinstance(data, dict) else ""
        result = abstract.strip() if isinstance(abstract, str) else ""
        if not result:
            result = NO_SEARCH_RESULT

        self._search_cache.put(query, result)
        self.logger.info(f"Web search: {query!r} -> {len(result)} chars")
        return result

    def read_file(self, path: str) -> str:
        path = path.strip()
        try:
            content = Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            self.logger.error(f"Error reading file {path!r}: {e}")
            return f"Error reading file '{path}': {e}"

        if self.read_max_chars and len(content) > self.read_max_chars:
            omitted = len(content) - self.read_max_chars
            content = content[:self.read_max_chars] + f"\n... (truncated, {omitted} more characters)"
        return content

    def write_file(self, argument: str) -> str:
        """Write ``content`` to ``path`` from a ``path,content`` argument."""
        path, sep, content = argument.partition(",")
        if not sep:
            return INVALID_WRITEFILE

        path = path.strip()
        content = content.replace("\\n", "\n")
        try:
            Path(path).write_text(content, encoding="utf-8")
        except OSError as e:
            self.logger.error(f"Error writing file {path!r}: {e}")
            return f"Error writing file '{path}': {e}"

        self.logger.info(f"Wrote {len(content)} chars to {path}")
        return f"Successfully wrote to {path}"

    def execute(self, command: str) -> str:
        """Run a program. Arguments are passed literally, never through a shell."""
        argv = command.split()
        if not argv:
            return "Error: Empty command."

        refusal = self.policy.check(argv)
        if refusal:
            self.logger.warning(f"Execution refused for {argv!r}: {refusal}")
            return refusal

        self.logger.warning(f"Executing agent command: {argv!r}")
        try:
            result = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                encoding="utf-8",
                errors="replace",
                timeout=self.execute_timeout,
            )
        except subprocess.TimeoutExpired as e:
            output = e.output or ""
            if isinstance(output, bytes):
                output = output.decode("utf-8", errors="replace")
            return f"Command failed: timed out after {self.execute_timeout} seconds\nOutput: {output.strip()}"
        except OSError as e:
            self.logger.error(f"Command could not start: {e}")
            return f"Command failed: {e}\nOutput: "

        output = (result.stdout or "").strip()
        if result.returncode != 0:
            self.logger.error(f"Command exited with status {result.returncode}: {argv!r}")
            return f"Command failed: exit status {result.returncode}\nOutput: {output}"
        return output
