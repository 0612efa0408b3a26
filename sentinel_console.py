#!/usr/bin/env python3
"""
Skyscope Sentinel Console -- watch Ether and Aurora talk, nudge them by typing.

The turn controller runs on its own thread; this thread only reads input
lines and turns them into USER_SUBMIT events. Everything the agents say is
printed as it is appended to the conversation.

Usage:
    python sentinel_console.py                 # Speech on (default)
    python sentinel_console.py --mute          # Text only, no synthesis/playback
    python sentinel_console.py --config path   # Alternate config.yaml
"""

import os
import re
import sys
import argparse
import threading
from pathlib import Path

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from prompt_toolkit.patch_stdout import patch_stdout

# Log lines go to the log file only; stderr output would tear the prompt
os.environ.setdefault('SENTINEL_LOG_FILE_ONLY', '1')

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from sentinel import persona
from sentinel.config import load_config
from sentinel.conversation import ConversationStore, Message
from sentinel.events import Event, EventType, SystemState
from sentinel.llm_client import GenerationClient
from sentinel.logger import LoggingSetupError, get_logger, setup_logging
from sentinel.pipeline import Coordinator
from sentinel.tool_protocol import DIRECTIVE_PATTERN
from sentinel.tools import ToolDispatcher
from sentinel.tts import SpeechSequencer


CODE_BLOCK = re.compile(r"```.*?```", re.DOTALL)

DEFAULT_COLORS = {
    "ether": "#7ec7ff",
    "aurora": "#ff77aa",
    "system": "italic #fad201",
    "user": "bold",
    "tool": "#23d18b",
    "tool_result": "grey54",
    "code": "on #282828",
}


class ConsoleView:
    """Prints conversation messages and tracks the status line."""

    def __init__(self, console: Console, config):
        self.console = console
        ui = config.section("ui")
        self.styles = {**DEFAULT_COLORS, **(ui.get("colors") or {})}
        self.tool_log_lines = ui.get("tool_log_lines", 3)
        self.state = SystemState.SPEAKING
        self.turn = persona.OPENING_SPEAKER

    def banner(self, execute_enabled: bool) -> None:
        self.console.print(Panel(f"MISSION: {persona.MISSION}", border_style="cyan"))
        self.console.print(Text(persona.WELCOME, style=self.styles["system"]))
        if execute_enabled:
            self.console.print(Text(persona.EXECUTE_WARNING, style="bold red"))
        self.console.print(Text("Type to interject. Ctrl+C or 'quit' to exit.", style="dim"))

    def render_reply(self, text: str) -> Text:
        body = Text(text)
        body.highlight_regex(CODE_BLOCK, style=self.styles["code"])
        # First directive only, matching what actually gets executed
        match = DIRECTIVE_PATTERN.search(text)
        if match:
            body.stylize(self.styles["tool"], match.start(), match.end())
        return body

    def on_message(self, message: Message) -> None:
        if message.is_tool_result:
            return  # shown in the tool activity log instead

        if message.role == "user":
            line = Text("User Directive: ", style=self.styles["user"])
            line.append(message.content)
        elif message.role == "system":
            line = Text(message.content, style=self.styles["system"])
        else:
            line = Text(f"{persona.display_name(message.role)}: ",
                        style=self.styles.get(message.role, "bold"))
            line.append_text(self.render_reply(message.content))
        self.console.print(line)

    def on_tool_result(self, text: str) -> None:
        lines = text.splitlines() or [""]
        shown = "\n".join(lines[:self.tool_log_lines])
        if len(lines) > self.tool_log_lines:
            shown += f"\n... ({len(lines) - self.tool_log_lines} more lines)"
        self.console.print(Text(f"[Tool Activity] Result: {shown}", style=self.styles["tool_result"]))

    def on_status(self, state: SystemState, turn: persona.AgentId) -> None:
        self.state = state
        self.turn = turn

    def toolbar(self):
        return HTML(
            f"<b>State:</b> {self.state.value} | "
            f"<b>Turn:</b> {persona.get_agent(self.turn).name}"
        )


def build_coordinator(config, view) -> Coordinator:
    """Wire the store, clients and controller together."""
    seed = [
        Message(role="system", content=persona.MISSION_BRIEFING),
        Message(role=persona.OPENING_SPEAKER.value, content=persona.OPENING_LINE),
    ]
    store = ConversationStore(config, seed=seed)
    return Coordinator(
        config=config,
        store=store,
        llm=GenerationClient(config),
        tools=ToolDispatcher(config),
        speech=SpeechSequencer(config),
        view=view,
    )


def run_console(config) -> None:
    """Main REPL loop."""
    logger = get_logger("console", config)
    console = Console(force_terminal=sys.stdout.isatty() or None)
    view = ConsoleView(console, config)

    try:
        config.ensure_directories()
    except OSError as e:
        logger.error(f"Could not create runtime directories: {e}")

    coordinator = build_coordinator(config, view)
    view.banner(coordinator.tools.policy.enabled)
    # Replay the seed so the screen shows how the conversation opens
    for message in coordinator.store.history:
        view.on_message(message)

    def _controller_main():
        coordinator.start()
        coordinator.run()

    controller = threading.Thread(target=_controller_main, name="turn-controller", daemon=True)
    controller.start()

    history_file = Path(config.get("ui.input_history", Path(__file__).parent / ".console_history"))
    pt_session = PromptSession(
        history=FileHistory(str(history_file)),
        bottom_toolbar=view.toolbar,
        refresh_interval=0.5,
    )

    try:
        with patch_stdout(raw=True):
            while coordinator.running:
                try:
                    text = pt_session.prompt("> ")
                except (EOFError, KeyboardInterrupt):
                    break
                if text.strip().lower() in ("quit", "exit"):
                    break
                coordinator.post(Event(EventType.USER_SUBMIT, data=text, source="console"))
    finally:
        coordinator.post(Event(EventType.QUIT, source="console"))
        controller.join(timeout=2)
        coordinator.store.save()
        logger.info(f"Console exiting: {coordinator.get_health()}")


def main():
    parser = argparse.ArgumentParser(description="Skyscope Sentinel -- two-agent console")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--mute", action="store_true", help="Text only, skip speech synthesis")
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.mute:
        config.set("tts.enabled", False)

    try:
        setup_logging(config)
    except LoggingSetupError as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)

    run_console(config)


if __name__ == "__main__":
    main()
