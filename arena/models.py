"""Pure dataclasses for the debate arena. No I/O, no deps."""

from dataclasses import dataclass, field
from enum import Enum

# speaker_index of a human interjection; excluded from turn and round counting
MEDIATOR = -1

MIN_PARTICIPANTS = 2
MAX_PARTICIPANTS = 5


@dataclass(frozen=True)
class Participant:
    name: str
    description: str = ""


@dataclass(frozen=True)
class TurnEntry:
    speaker_index: int     # position in the participant list, or MEDIATOR
    text: str

    @property
    def is_mediator(self) -> bool:
        return self.speaker_index == MEDIATOR


class ControllerState(Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    AWAITING_PLAYBACK = "awaiting_playback"
    AWAITING_MEDIATOR = "awaiting_mediator"
    PAUSED = "paused"
    STOPPED = "stopped"
    ERRORED = "errored"


@dataclass(frozen=True)
class DebateSettings:
    response_length: int = 3           # 1..5, mapped to an instruction string
    voice: bool = False
    max_rounds: int | None = None      # None = open-ended
    mediator: bool = True
    settle_delay_sec: float = 1.5
    finish_as_stopped: bool = False    # completed debates end in STOPPED instead of IDLE

    def __post_init__(self) -> None:
        if not 1 <= self.response_length <= 5:
            raise ValueError(f"response_length must be between 1 and 5, got {self.response_length}")
        if self.max_rounds is not None and self.max_rounds < 1:
            raise ValueError(f"max_rounds must be positive, got {self.max_rounds}")
        if self.settle_delay_sec < 0:
            raise ValueError("settle_delay_sec cannot be negative")


@dataclass(frozen=True)
class TurnRequest:
    participants: tuple[Participant, ...]
    current_speaker_index: int
    topic: str
    history: tuple[TurnEntry, ...]
    response_length: int


@dataclass(frozen=True)
class DebateSnapshot:
    state: ControllerState
    history: tuple[TurnEntry, ...]
    draft: str | None
    next_speaker_index: int
    round_number: int
    paused: bool = False
    complete: bool = False
    error: str | None = None


@dataclass
class ParticipantReport:
    name: str
    summary: str = ""
    driving_points: list[str] = field(default_factory=list)
    key_arguments: list[str] = field(default_factory=list)
    sentiment: str = "Neutral"
    final_stance: str = ""


@dataclass
class DebateReport:
    overview: str
    key_insights: list[str] = field(default_factory=list)
    participants: list[ParticipantReport] = field(default_factory=list)
    key_takeaways: list[str] = field(default_factory=list)
