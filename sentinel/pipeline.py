"""
Turn pipeline for the two-agent dialogue.

Components:
    Coordinator -- the turn controller. A single thread drains the event
                   queue and applies one transition per event; it owns the
                   system state and whose turn it is.
    Workers     -- generation, tool and speech jobs on a thread pool. Each
                   job reports back with exactly one event.

Transition table (any pair not listed is a logged no-op):

    any             USER_SUBMIT        -> append, persist, generate  THINKING
    THINKING        GENERATION ok+tool -> append, speak + tool       EXECUTING_TOOL
    THINKING        GENERATION ok      -> append, speak              SPEAKING
    THINKING        GENERATION error   -> append system error        THINKING
    EXECUTING_TOOL  TOOL_RESULT        -> append, flip, generate     THINKING
    SPEAKING        SPEECH_DONE        -> flip, generate             THINKING
    any             QUIT               -> stop loop

When a reply carries a tool directive, speech and tool run together and only
the tool result advances the turn. Every job is stamped with the reply cycle
it belongs to; results from a cycle the user has since interrupted cannot
advance anything.
"""

import queue
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from sentinel import persona
from sentinel.conversation import TOOL_RESULT_TAG, ConversationStore, Message
from sentinel.events import (
    Event,
    EventType,
    GenerationResult,
    SpeechDone,
    SystemState,
    ToolResult,
)
from sentinel.llm_client import GenerationClient
from sentinel.logger import get_logger
from sentinel.persona import AgentId
from sentinel.tool_protocol import Directive, parse_directive
from sentinel.tools import ToolDispatcher
from sentinel.tts import SpeechSequencer


class NullView:
    """Rendering hooks. The console swaps in a real implementation."""

    def on_message(self, message: Message) -> None:
        pass

    def on_tool_result(self, text: str) -> None:
        pass

    def on_status(self, state: SystemState, turn: AgentId) -> None:
        pass


class Coordinator:
    """Turn controller: the sole consumer of generation, tools, speech and store."""

    def __init__(self, *, config, store: ConversationStore, llm: GenerationClient,
                 tools: ToolDispatcher, speech: SpeechSequencer,
                 executor=None, event_queue: Optional[queue.Queue] = None,
                 view=None):
        self.config = config
        self.logger = get_logger("pipeline.coordinator", config)
        self.store = store
        self.llm = llm
        self.tools = tools
        self.speech = speech
        self.view = view or NullView()
        self.event_queue = event_queue or queue.Queue()
        self.executor = executor or ThreadPoolExecutor(
            max_workers=config.get("system.workers", 4),
            thread_name_prefix="sentinel-worker",
        )

        self.max_history_messages = config.get("llm.max_history_messages", 40)
        self.max_context_chars = config.get("llm.max_context_chars", 24000)

        self.running = True
        self.state = SystemState.SPEAKING
        self.turn = persona.OPENING_SPEAKER
        self.cycle = 0

        self.stats = {
            'start_time': time.time(),
            'generations_requested': 0,
            'tool_calls': 0,
            'speech_calls': 0,
            'speech_played': 0,
            'turn_flips': 0,
            'stale_events': 0,
            'errors': 0,
            'last_error_time': None,
            'last_error_msg': None,
        }

    # ----- main loop -----

    def post(self, event: Event) -> None:
        """Thread-safe entry for workers and the input loop."""
        self.event_queue.put(event)

    def start(self) -> None:
        """Play the opening line through the ordinary reply path."""
        seed = self.store.history[:self.store.seed_count]
        opening = next((m for m in reversed(seed) if m.role == self.turn.value), None)
        self._notify_status()
        if opening is None:
            # Resumed sessions have no scripted opening to replay
            self.logger.info("No opening line found, waiting for user input")
            self._set_state(SystemState.THINKING)
            return
        self.logger.info(f"Opening cycle: {persona.get_agent(self.turn).name} speaks first")
        self._begin_reply(self.turn, opening.content, parse_directive(opening.content))

    def run(self) -> None:
        """Block on the event queue, dispatching events until shutdown."""
        self.logger.info("Coordinator event loop started")
        while self.running:
            try:
                event = self.event_queue.get(timeout=0.5)
            except queue.Empty:
                continue
            self.handle(event)
        self.logger.info("Coordinator event loop exited")

    def drain(self) -> int:
        """Process every queued event without blocking. Returns the count."""
        handled = 0
        while self.running:
            try:
                event = self.event_queue.get_nowait()
            except queue.Empty:
                break
            self.handle(event)
            handled += 1
        return handled

    def handle(self, event: Event) -> None:
        """Apply one transition. A failing handler is logged, never fatal."""
        try:
            self._dispatch(event)
        except Exception as e:
            self.logger.error(f"Dispatch error for {event}: {e}", exc_info=True)
            self._record_error(f"dispatch: {e}")

    def shutdown(self) -> None:
        # In-flight jobs run to completion; nothing is cancelled
        self.running = False
        self.executor.shutdown(wait=False)

    def get_health(self) -> dict:
        return {
            'running': self.running,
            'state': self.state.value,
            'turn': self.turn.value,
            'cycle': self.cycle,
            'history_length': len(self.store),
            'event_queue_size': self.event_queue.qsize(),
            'generation_calls': getattr(self.llm, 'call_count', None),
            'last_generation': getattr(self.llm, 'last_call_info', None),
            'stats': dict(self.stats),
        }

    # ----- dispatch -----

    def _dispatch(self, event: Event) -> None:
        handlers = {
            EventType.USER_SUBMIT: self._handle_user_submit,
            EventType.GENERATION_RESULT: self._handle_generation_result,
            EventType.TOOL_RESULT: self._handle_tool_result,
            EventType.SPEECH_DONE: self._handle_speech_done,
            EventType.QUIT: lambda e: self._handle_quit(),
        }
        handler = handlers.get(event.type)
        if handler:
            handler(event)
        else:
            self.logger.debug(f"Unhandled event: {event.type.name}")

    def _handle_quit(self) -> None:
        self.logger.info("Quit requested")
        self.shutdown()

    def _handle_user_submit(self, event: Event) -> None:
        text = (event.data or "").strip()
        if not text:
            return

        self._append("user", text)
        if not self.store.persist_every_message:
            self.store.save()

        self.cycle += 1
        self._set_state(SystemState.THINKING)
        self._request_generation()

    def _handle_generation_result(self, event: Event) -> None:
        result: GenerationResult = event.data
        if result.cycle != self.cycle or self.state is not SystemState.THINKING:
            self._stale(event, f"generation for cycle {result.cycle}")
            return

        if not result.ok:
            self.logger.error(f"Generation failed for {result.agent.value}: {result.error}")
            self._record_error(str(result.error))
            # Nothing is scheduled; the loop waits for the user to nudge it
            self._append("system", f"Error: {result.error}")
            self._notify_status()
            return

        self._append(result.agent.value, result.text)
        self._begin_reply(result.agent, result.text, parse_directive(result.text))

    def _handle_tool_result(self, event: Event) -> None:
        result: ToolResult = event.data
        self._append("system", f"{TOOL_RESULT_TAG} {result.text}")
        self.view.on_tool_result(result.text)

        if result.cycle != self.cycle or self.state is not SystemState.EXECUTING_TOOL:
            self._stale(event, f"tool result for cycle {result.cycle}")
            return

        self._advance_turn()

    def _handle_speech_done(self, event: Event) -> None:
        done: SpeechDone = event.data
        if done.played:
            self.stats['speech_played'] += 1
        if done.cycle != self.cycle or self.state is not SystemState.SPEAKING:
            # With a tool in play speech is a side effect, not a gate
            self.logger.debug(
                f"Speech done for {done.agent.value} (cycle {done.cycle}) ignored in {self.state.value}"
            )
            return
        self._advance_turn()

    # ----- transitions -----

    def _begin_reply(self, agent: AgentId, text: str, directive: Optional[Directive]) -> None:
        self._spawn_speech(agent, text)
        if directive is not None:
            self._set_state(SystemState.EXECUTING_TOOL)
            self._spawn_tool(directive)
        else:
            self._set_state(SystemState.SPEAKING)

    def _advance_turn(self) -> None:
        self.turn = self.turn.other
        self.cycle += 1
        self.stats['turn_flips'] += 1
        self._set_state(SystemState.THINKING)
        self._request_generation()

    def _set_state(self, state: SystemState) -> None:
        if state is not self.state:
            self.logger.debug(f"State {self.state.value} -> {state.value} (turn={self.turn.value})")
        self.state = state
        self._notify_status()

    def _notify_status(self) -> None:
        self.view.on_status(self.state, self.turn)

    def _append(self, role: str, content: str) -> Message:
        message = self.store.append(role, content)
        self.view.on_message(message)
        return message

    def _stale(self, event: Event, what: str) -> None:
        self.stats['stale_events'] += 1
        self.logger.info(
            f"Discarding stale {what} (current cycle {self.cycle}, state {self.state.value})"
        )

    def _record_error(self, message: str) -> None:
        self.stats['errors'] += 1
        self.stats['last_error_time'] = time.time()
        self.stats['last_error_msg'] = message

    # ----- workers -----

    def _request_generation(self) -> None:
        agent_id, cycle = self.turn, self.cycle
        # Snapshot taken here, after every reply so far has been appended
        history = self.store.window(self.max_history_messages, self.max_context_chars)
        self.stats['generations_requested'] += 1
        self.executor.submit(self._generation_job, agent_id, cycle, history)

    def _spawn_speech(self, agent_id: AgentId, text: str) -> None:
        self.stats['speech_calls'] += 1
        self.executor.submit(self._speech_job, agent_id, self.cycle, text)

    def _spawn_tool(self, directive: Directive) -> None:
        self.stats['tool_calls'] += 1
        self.executor.submit(self._tool_job, self.cycle, directive)

    def _generation_job(self, agent_id: AgentId, cycle: int, history) -> None:
        try:
            text = self.llm.generate(persona.get_agent(agent_id), history)
            result = GenerationResult(agent=agent_id, cycle=cycle, text=text)
        except Exception as e:
            result = GenerationResult(agent=agent_id, cycle=cycle, error=e)
        self.post(Event(EventType.GENERATION_RESULT, data=result, source="generation"))

    def _speech_job(self, agent_id: AgentId, cycle: int, text: str) -> None:
        played = False
        try:
            played = self.speech.speak(persona.get_agent(agent_id), text)
        except Exception as e:
            self.logger.error(f"Speech worker error: {e}", exc_info=True)
        finally:
            self.post(Event(
                EventType.SPEECH_DONE,
                data=SpeechDone(agent=agent_id, cycle=cycle, played=played),
                source="speech",
            ))

    def _tool_job(self, cycle: int, directive: Directive) -> None:
        try:
            text = self.tools.dispatch(directive)
        except Exception as e:
            self.logger.error(f"Tool worker error: {e}", exc_info=True)
            text = f"Tool failed: {e}"
        self.post(Event(EventType.TOOL_RESULT, data=ToolResult(cycle=cycle, text=text), source="tool"))
