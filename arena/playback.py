"""Local audio playback: synthesize a turn, hand the clip to a sink, wait for it to finish."""

import asyncio
import logging
import shlex
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

from arena.models import Participant
from arena.output import _slug
from arena.providers.base import PlaybackError, Speaker
from arena.providers.speech import ElevenLabsSpeech

logger = logging.getLogger(__name__)


class AudioSink(ABC):
    @abstractmethod
    async def play(self, audio: bytes, label: str) -> None:
        """Return once the clip has finished playing (or been stored)."""
        ...


class FileSink(AudioSink):
    """Writes every clip to ``output_dir`` as ``<timestamp>_<nn>_<label>.mp3``."""

    def __init__(self, output_dir: Path) -> None:
        self._output_dir = output_dir
        self._count = 0

    async def play(self, audio: bytes, label: str) -> None:
        self._output_dir.mkdir(parents=True, exist_ok=True)
        self._count += 1
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = self._output_dir / f"{timestamp}_{self._count:02d}_{_slug(label)}.mp3"
        await asyncio.to_thread(path.write_bytes, audio)
        logger.info("Audio saved to: %s", path)


class CommandSink(AudioSink):
    """Pipes each clip into an external player, e.g. ``ffplay -nodisp -autoexit -``."""

    def __init__(self, command: str) -> None:
        self._argv = shlex.split(command)
        if not self._argv:
            raise ValueError("player command is empty")

    async def play(self, audio: bytes, label: str) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self._argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise PlaybackError("player", f"Cannot start {self._argv[0]}: {exc}") from exc
        try:
            await proc.communicate(audio)
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise
        if proc.returncode:
            raise PlaybackError("player", f"{self._argv[0]} exited with {proc.returncode}")


class VoicePlayer(Speaker):
    """Speaker that fetches audio from ElevenLabs and plays it through a sink."""

    def __init__(self, speech: ElevenLabsSpeech, sink: AudioSink) -> None:
        self._speech = speech
        self._sink = sink

    async def speak(self, text: str, voice_id: str, participant: Participant) -> None:
        audio = await self._speech.synthesize(text, voice_id, participant)
        await self._sink.play(audio, participant.name)
