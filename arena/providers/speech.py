"""ElevenLabs text-to-speech over HTTP, with voice settings derived from the persona."""

import logging
import time

import httpx

from config.config_loader import SpeechConfig
from arena.models import Participant
from arena.providers.base import PlaybackError

logger = logging.getLogger(__name__)

_SERVICE = "speech"

_CALM = ("philosopher", "wise", "calm", "stoic", "thoughtful", "measured", "monk", "sage",
         "meditat", "contemplat", "serene", "patient", "rational", "logical", "analytic")
_ENERGETIC = ("entrepreneur", "bold", "energetic", "passionate", "revolutionary", "fiery",
              "intense", "radical", "visionary", "disrupt", "innovator", "maverick", "rebel",
              "provocat")
_AUTHORITY = ("leader", "president", "general", "commander", "king", "queen", "emperor",
              "authorit", "powerful", "commanding", "military", "dictator")
_HUMOR = ("comedian", "funny", "humorous", "satirist", "witty", "sarcastic", "comic", "jest",
          "playful", "whimsical")
_ACADEMIC = ("scientist", "professor", "researcher", "academic", "scholar", "physicist",
             "mathematician", "biologist", "engineer", "doctor", "intellectual")


def _score(text: str, indicators: tuple[str, ...]) -> int:
    return sum(1 for word in indicators if word in text)


def derive_voice_settings(name: str = "", description: str = "") -> dict[str, float | bool]:
    """Map persona keywords to ElevenLabs voice settings.

    Calm and academic personas speak steadier and slower, energetic and
    comedic ones more expressive, authoritative ones steadier and closer to
    the base voice. Each adjustment is clamped.
    """
    text = f"{name} {description}".lower()
    stability = 0.45
    similarity_boost = 0.75
    style = 0.45
    speed = 1.0

    calm = _score(text, _CALM)
    if calm:
        stability = min(0.85, stability + calm * 0.1)
        style = max(0.1, style - calm * 0.08)
        speed = max(0.85, speed - calm * 0.03)

    energetic = _score(text, _ENERGETIC)
    if energetic:
        stability = max(0.2, stability - energetic * 0.08)
        style = min(0.9, style + energetic * 0.1)
        speed = min(1.15, speed + energetic * 0.03)

    authority = _score(text, _AUTHORITY)
    if authority:
        stability = min(0.8, stability + authority * 0.08)
        similarity_boost = min(0.95, similarity_boost + authority * 0.05)
        speed = max(0.9, speed - authority * 0.02)

    humor = _score(text, _HUMOR)
    if humor:
        stability = max(0.2, stability - humor * 0.1)
        style = min(0.85, style + humor * 0.12)

    academic = _score(text, _ACADEMIC)
    if academic:
        stability = min(0.75, stability + academic * 0.06)
        speed = max(0.9, speed - academic * 0.02)

    return {
        "stability": round(stability, 2),
        "similarity_boost": round(similarity_boost, 2),
        "style": round(style, 2),
        "use_speaker_boost": True,
        "speed": round(speed, 2),
    }


class ElevenLabsSpeech:
    """Fetches the full audio clip for one piece of text."""

    def __init__(self, config: SpeechConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        api_key = config.api_key()
        if not api_key:
            raise PlaybackError(_SERVICE, f"Missing API key: {config.api_key_env}")
        self._headers = {"xi-api-key": api_key, "Content-Type": "application/json"}
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(float(config.timeout_sec), connect=10.0)
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def synthesize(self, text: str, voice_id: str, participant: Participant) -> bytes:
        if not text or not voice_id:
            raise PlaybackError(_SERVICE, "text and voice_id are required")

        url = f"{self._config.base_url}/text-to-speech/{voice_id}/stream"
        body = {
            "text": text[: self._config.max_chars],
            "model_id": self._config.model_id,
            "voice_settings": derive_voice_settings(participant.name, participant.description),
        }
        start = time.monotonic()
        try:
            resp = await self._client.post(
                url,
                params={"output_format": self._config.output_format},
                json=body,
                headers=self._headers,
            )
        except httpx.HTTPError as exc:
            raise PlaybackError(_SERVICE, f"Request failed: {exc}") from exc

        if not resp.is_success:
            logger.error("TTS error %d: %s", resp.status_code, resp.text[:300])
            raise PlaybackError(_SERVICE, f"TTS failed: {resp.status_code}")

        logger.info(
            "Synthesized %d bytes for %s in %.2fs",
            len(resp.content),
            participant.name,
            time.monotonic() - start,
        )
        return resp.content
