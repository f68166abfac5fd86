"""Load settings.yaml into typed dataclasses. Checks API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class GatewayConfig:
    base_url: str
    api_key_env: str
    model: str
    timeout_sec: int

    def api_key(self) -> str:
        return os.environ.get(self.api_key_env, "").strip()


@dataclass
class SpeechConfig:
    base_url: str
    api_key_env: str
    model_id: str
    output_format: str
    max_chars: int
    timeout_sec: int
    player_command: str = ""

    def api_key(self) -> str:
        return os.environ.get(self.api_key_env, "").strip()


@dataclass
class ProfileConfig:
    name: str
    max_rounds: int | None
    mediator: bool
    finish_as_stopped: bool = False


@dataclass
class DefaultsConfig:
    profile: str
    response_length: int
    voice: bool
    settle_delay_sec: float
    output_dir: Path


@dataclass
class PromptsConfig:
    system: str
    opening_stage: str
    reply_stage: str
    opening_request: str
    reply_request: str
    report: str
    suggest: str
    response_lengths: dict[int, str] = field(default_factory=dict)


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    profiles: dict[str, ProfileConfig]
    gateway: GatewayConfig
    speech: SpeechConfig
    prompts: PromptsConfig
    gateway_available: bool = False
    speech_available: bool = False


def _key_present(service: str, api_key_env: str) -> bool:
    if os.environ.get(api_key_env, "").strip():
        logger.info("Service available: %s", service)
        return True
    logger.info("Service disabled (no API key): %s — set %s in .env", service, api_key_env)
    return False


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs missing API keys but does not raise — callers check the
    *_available flags.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        profile=str(defaults_raw["profile"]),
        response_length=int(defaults_raw["response_length"]),
        voice=bool(defaults_raw["voice"]),
        settle_delay_sec=float(defaults_raw["settle_delay_sec"]),
        output_dir=Path(defaults_raw["output_dir"]),
    )

    profiles: dict[str, ProfileConfig] = {}
    for profile_name, profile_raw in raw.get("profiles", {}).items():
        max_rounds = profile_raw.get("max_rounds")
        profiles[profile_name] = ProfileConfig(
            name=profile_name,
            max_rounds=int(max_rounds) if max_rounds is not None else None,
            mediator=bool(profile_raw.get("mediator", True)),
            finish_as_stopped=bool(profile_raw.get("finish_as_stopped", False)),
        )
    if defaults.profile not in profiles:
        raise ValueError(f"Default profile '{defaults.profile}' is not defined under profiles")

    gateway_raw = raw["gateway"]
    gateway = GatewayConfig(
        base_url=str(gateway_raw["base_url"]).rstrip("/"),
        api_key_env=gateway_raw["api_key_env"],
        model=gateway_raw["model"],
        timeout_sec=int(gateway_raw["timeout_sec"]),
    )

    speech_raw = raw["speech"]
    speech = SpeechConfig(
        base_url=str(speech_raw["base_url"]).rstrip("/"),
        api_key_env=speech_raw["api_key_env"],
        model_id=speech_raw["model_id"],
        output_format=speech_raw["output_format"],
        max_chars=int(speech_raw["max_chars"]),
        timeout_sec=int(speech_raw["timeout_sec"]),
        player_command=str(speech_raw.get("player_command") or ""),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        system=prompts_raw["system"],
        opening_stage=prompts_raw["opening_stage"],
        reply_stage=prompts_raw["reply_stage"],
        opening_request=prompts_raw["opening_request"],
        reply_request=prompts_raw["reply_request"],
        report=prompts_raw["report"],
        suggest=prompts_raw["suggest"],
        response_lengths={int(k): str(v) for k, v in prompts_raw.get("response_lengths", {}).items()},
    )

    return AppConfig(
        defaults=defaults,
        profiles=profiles,
        gateway=gateway,
        speech=speech,
        prompts=prompts,
        gateway_available=_key_present("gateway", gateway.api_key_env),
        speech_available=_key_present("speech", speech.api_key_env),
    )
