"""Streaming turn generation against an OpenAI-compatible chat completions gateway."""

import json
import logging
import time
from collections.abc import Callable

import httpx

from config.config_loader import GatewayConfig, PromptsConfig
from arena.frames import decode_stream
from arena.models import TurnRequest
from arena.prompts import build_messages
from arena.providers.base import NetworkError, ProtocolError, TurnGenerator

logger = logging.getLogger(__name__)

_SERVICE = "gateway"


def _error_message(status_code: int, body: bytes) -> str:
    """Message for a failed response: ``{"error": ...}`` body, else a generic one."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return "Network error"
    if isinstance(data, dict) and data.get("error"):
        error = data["error"]
        # OpenAI-style gateways nest the message
        if isinstance(error, dict):
            return str(error.get("message") or f"HTTP {status_code}")
        return str(error)
    return f"HTTP {status_code}"


class GatewayGenerator(TurnGenerator):
    """Opens one ``stream: true`` chat completion per turn and decodes its frames."""

    def __init__(
        self,
        config: GatewayConfig,
        prompts: PromptsConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._prompts = prompts
        api_key = config.api_key()
        if not api_key:
            raise NetworkError(_SERVICE, f"Missing API key: {config.api_key_env}")
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(float(config.timeout_sec), connect=10.0)
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def stream_turn(self, request: TurnRequest, on_delta: Callable[[str], None]) -> None:
        speaker = request.participants[request.current_speaker_index]
        body = {
            "model": self._config.model,
            "messages": build_messages(request, self._prompts),
            "stream": True,
        }
        url = f"{self._config.base_url}/chat/completions"
        start = time.monotonic()
        received = 0

        def count(delta: str) -> None:
            nonlocal received
            received += len(delta)
            on_delta(delta)

        try:
            async with self._client.stream("POST", url, json=body, headers=self._headers) as resp:
                if not resp.is_success:
                    raw = await resp.aread()
                    message = _error_message(resp.status_code, raw)
                    logger.warning("Gateway returned %d for %s: %s", resp.status_code, speaker.name, message)
                    raise NetworkError(_SERVICE, message)
                if resp.status_code == 204:
                    raise ProtocolError(_SERVICE, "Response has no body")
                await decode_stream(resp.aiter_bytes(), count, lambda: None)
        except httpx.HTTPError as exc:
            raise NetworkError(_SERVICE, f"Request failed: {exc}") from exc

        logger.info(
            "Turn for %s streamed in %.2fs, %d chars",
            speaker.name,
            time.monotonic() - start,
            received,
        )
