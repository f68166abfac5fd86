"""Shared pytest fixtures."""

import asyncio
from collections.abc import Callable
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from config.config_loader import (
    AppConfig,
    DefaultsConfig,
    GatewayConfig,
    ProfileConfig,
    PromptsConfig,
    SpeechConfig,
)
from arena.models import Participant, TurnRequest
from arena.providers.base import Speaker, TurnGenerator


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        system="You are {name} ({description}). Opponents: {others}. Topic: {topic}. Length: {length}. {stage}",
        opening_stage="Give your OPENING STATEMENT.",
        reply_stage="Respond to the latest arguments.",
        opening_request='The debate topic is: "{topic}". Please give your opening statement.',
        reply_request="Please make your next point.",
        report="Participants: {participants}\nTopic: {topic}\nReturn JSON.",
        suggest="Suggest one personality.{exclude}",
        response_lengths={
            1: "1-2 sentences",
            2: "1 short paragraph",
            3: "2-3 paragraphs",
            4: "3-5 paragraphs",
            5: "5+ detailed paragraphs",
        },
    )


@pytest.fixture
def sample_gateway_config() -> GatewayConfig:
    return GatewayConfig(
        base_url="https://gateway.test/v1",
        api_key_env="TEST_GATEWAY_KEY",
        model="test-model-1",
        timeout_sec=30,
    )


@pytest.fixture
def sample_speech_config() -> SpeechConfig:
    return SpeechConfig(
        base_url="https://speech.test/v1",
        api_key_env="TEST_SPEECH_KEY",
        model_id="test-tts",
        output_format="mp3_44100_128",
        max_chars=20,
        timeout_sec=30,
    )


@pytest.fixture
def sample_app_config(
    tmp_path: Path,
    sample_prompts_config: PromptsConfig,
    sample_gateway_config: GatewayConfig,
    sample_speech_config: SpeechConfig,
) -> AppConfig:
    return AppConfig(
        defaults=DefaultsConfig(
            profile="panel",
            response_length=3,
            voice=False,
            settle_delay_sec=0.5,
            output_dir=tmp_path / "output",
        ),
        profiles={
            "classic": ProfileConfig(name="classic", max_rounds=3, mediator=False),
            "panel": ProfileConfig(name="panel", max_rounds=None, mediator=True),
        },
        gateway=sample_gateway_config,
        speech=sample_speech_config,
        prompts=sample_prompts_config,
        gateway_available=True,
    )


@pytest.fixture
def two_participants() -> list[Participant]:
    return [
        Participant("Socrates", "Questions every assumption."),
        Participant("Queen Elizabeth", "Measured and dutiful."),
    ]


@pytest.fixture
def three_participants(two_participants: list[Participant]) -> list[Participant]:
    return two_participants + [Participant("Zork", "A sarcastic robot.")]


class ScriptedGenerator(TurnGenerator):
    """Test double TurnGenerator.

    Each call consumes the next script item: a list of deltas to emit, or an
    exception to raise. When ``gate`` is set, the turn emits its first delta
    and then blocks until the gate opens.
    """

    def __init__(self, script: list | None = None, gate: asyncio.Event | None = None) -> None:
        self.script = list(script or [])
        self.gate = gate
        self.requests: list[TurnRequest] = []
        self.cancelled = False
        self.last_on_delta: Callable[[str], None] | None = None

    async def stream_turn(self, request: TurnRequest, on_delta: Callable[[str], None]) -> None:
        self.requests.append(request)
        self.last_on_delta = on_delta
        item = self.script.pop(0) if self.script else [f"Turn {len(self.requests)}"]
        if isinstance(item, Exception):
            await asyncio.sleep(0)
            raise item
        try:
            for i, delta in enumerate(item):
                await asyncio.sleep(0)
                on_delta(delta)
                if i == 0 and self.gate is not None:
                    await self.gate.wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


class RecordingSpeaker(Speaker):
    """Test double Speaker that records calls and optionally blocks or fails."""

    def __init__(self, gate: asyncio.Event | None = None, error: Exception | None = None) -> None:
        self.gate = gate
        self.error = error
        self.calls: list[tuple[str, str, Participant]] = []

    async def speak(self, text: str, voice_id: str, participant: Participant) -> None:
        self.calls.append((text, voice_id, participant))
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error


def mock_openai_client(content: str | None = None, tool_arguments: str | None = None, side_effect=None) -> MagicMock:
    """AsyncOpenAI stand-in whose chat completion returns one message."""
    tool_calls = None
    if tool_arguments is not None:
        tool_calls = [SimpleNamespace(function=SimpleNamespace(name="suggest_personality", arguments=tool_arguments))]
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(choices=[SimpleNamespace(message=message)]),
        side_effect=side_effect,
    )
    return client
