"""
Speech Sequencer

Turns an agent reply into audio with two external programs: a per-voice
synthesis command that writes a WAV file, then a player for that file.
Directive markup and code fences are stripped first; the spoken rendition
carries no machine-directed syntax.

Playback starts only after synthesis has signalled completion: the
synthesis process must exit cleanly and its output file must exist with a
size that holds steady across consecutive polls.
"""

import re
import subprocess
import threading
import time
from pathlib import Path
from typing import List, Optional

from sentinel.logger import get_logger
from sentinel.persona import Agent
from sentinel.tool_protocol import strip_directives


CODE_FENCE = re.compile(r"```[\w+-]*")

DEFAULT_VOICE_COMMANDS = {
    "ether": [
        "tts", "--text", "{text}",
        "--model_name", "tts_models/en/ljspeech/tacotron2-DDC",
        "--vocoder_name", "vocoder_models/en/ljspeech/hifigan_v2",
        "--out_path", "{out_path}",
    ],
    "aurora": [
        "tts", "--text", "{text}",
        "--model_name", "tts_models/en/vctk/vits",
        "--speaker_idx", "p232",
        "--out_path", "{out_path}",
    ],
}


def strip_markup(text: str) -> str:
    """Plain spoken text: no tool directives, no code fence markers."""
    text = strip_directives(text)
    text = CODE_FENCE.sub("", text)
    return re.sub(r"\s+", " ", text).strip()


class SpeechSequencer:
    """Synthesis then playback, one utterance at a time"""

    def __init__(self, config):
        self.config = config
        self.logger = get_logger(__name__, config)

        # Serializes audio so overlapping cycles never talk over each other
        self._tts_lock = threading.Lock()

        self.enabled = config.get("tts.enabled", True)
        self.audio_dir = Path(config.get("tts.audio_dir", "/tmp"))
        self.player = config.get("tts.player", "aplay")
        self.synth_timeout = config.get("tts.synth_timeout", 300)
        self.playback_timeout = config.get("tts.playback_timeout", 300)
        self.stable_polls = max(1, int(config.get("tts.stable_polls", 2)))
        self.poll_interval = float(config.get("tts.poll_interval", 0.05))
        self.artifact_timeout = float(config.get("tts.artifact_timeout", 5.0))

        self.logger.info(
            f"Speech sequencer {'enabled' if self.enabled else 'disabled'} "
            f"(player={self.player}, audio_dir={self.audio_dir})"
        )

    def artifact_path(self, agent: Agent) -> Path:
        return self.audio_dir / f"{agent.voice}.wav"

    def synth_command(self, agent: Agent, text: str, out_path: Path) -> List[str]:
        template = self.config.get(f"tts.voices.{agent.voice}.command") \
            or DEFAULT_VOICE_COMMANDS.get(agent.voice)
        if not template:
            raise ValueError(f"No synthesis command configured for voice {agent.voice!r}")
        return [part.format(text=text, out_path=str(out_path)) for part in template]

    def speak(self, agent: Agent, text: str) -> bool:
        """
        Speak a reply for ``agent``

        Returns:
            True if audio was played, False if any step was skipped or failed
        """
        if not self.enabled:
            return False

        spoken = strip_markup(text)
        if not spoken:
            self.logger.debug(f"Nothing to speak for {agent.name}")
            return False

        with self._tts_lock:
            out_path = self.artifact_path(agent)
            try:
                if not self._synthesize(agent, spoken, out_path):
                    return False
                return self._play(out_path)
            except Exception as e:
                self.logger.error(f"TTS error for {agent.name}: {e}", exc_info=True)
                return False

    def _synthesize(self, agent: Agent, text: str, out_path: Path) -> bool:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        # A leftover file from the previous utterance must not pass the stability check
        out_path.unlink(missing_ok=True)

        cmd = self.synth_command(agent, text, out_path)
        self.logger.info(f"Synthesizing {len(text)} chars for {agent.name}")
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                timeout=self.synth_timeout,
            )
        except FileNotFoundError as e:
            self.logger.error(f"TTS binary not found: {e}")
            return False
        except subprocess.TimeoutExpired:
            self.logger.error(f"Synthesis timed out after {self.synth_timeout}s")
            return False

        if result.returncode != 0:
            err = (result.stderr or b"").decode("utf-8", errors="replace").strip()
            self.logger.error(f"Synthesis error (code {result.returncode}): {err[:300]}")
            return False

        return self._wait_for_artifact(out_path)

    def _wait_for_artifact(self, path: Path) -> bool:
        """Wait until ``path`` exists and its size is unchanged across polls."""
        deadline = time.monotonic() + self.artifact_timeout
        last_size: Optional[int] = None
        steady = 0

        while time.monotonic() <= deadline:
            try:
                size = path.stat().st_size
            except FileNotFoundError:
                size = None

            if size and size == last_size:
                steady += 1
                if steady >= self.stable_polls:
                    return True
            else:
                steady = 0
            last_size = size
            time.sleep(self.poll_interval)

        self.logger.error(f"Audio artifact {path} never settled")
        return False

    def _play(self, path: Path) -> bool:
        try:
            result = subprocess.run(
                [self.player, str(path)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                timeout=self.playback_timeout,
            )
        except FileNotFoundError as e:
            self.logger.error(f"Audio player not found: {e}")
            return False
        except subprocess.TimeoutExpired:
            self.logger.error(f"{self.player} timed out after {self.playback_timeout}s")
            return False

        if result.returncode != 0:
            err = (result.stderr or b"").decode("utf-8", errors="replace").strip()
            self.logger.error(f"{self.player} error (code {result.returncode}): {err[:300]}")
            return False

        self.logger.info("TTS playback completed successfully")
        return True
