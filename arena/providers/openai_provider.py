"""Non-streaming chat completions through the gateway, using the openai SDK."""

import asyncio
import logging
import time
from typing import Any

from openai import AsyncOpenAI

from config.config_loader import GatewayConfig
from arena.providers.base import ReportError

logger = logging.getLogger(__name__)

_SERVICE = "gateway"


class CompletionClient:
    """Thin async wrapper returning the first choice's message."""

    def __init__(self, config: GatewayConfig, client: AsyncOpenAI | None = None) -> None:
        self._config = config
        if client is None:
            api_key = config.api_key()
            if not api_key:
                raise ReportError(_SERVICE, f"Missing API key: {config.api_key_env}")
            client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)
        self._client = client

    async def complete(self, messages: list[dict[str, str]], **kwargs: Any) -> Any:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._config.model,
                    messages=messages,
                    **kwargs,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ReportError(_SERVICE, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ReportError(_SERVICE, f"API call failed: {exc}") from exc

        choice = response.choices[0] if response.choices else None
        if not choice or choice.message is None:
            raise ReportError(_SERVICE, "Empty response")

        logger.info("Completion via %s: %.2fs", self._config.model, time.monotonic() - start)
        return choice.message
