"""Turn arithmetic over the append-only debate history. Stateless."""

import math
from collections.abc import Sequence

from arena.models import TurnEntry


def debate_entries(history: Sequence[TurnEntry]) -> list[TurnEntry]:
    """Return the history without mediator interjections."""
    return [e for e in history if not e.is_mediator]


def next_speaker_index(history: Sequence[TurnEntry], participant_count: int) -> int:
    return len(debate_entries(history)) % participant_count


def round_complete(history: Sequence[TurnEntry], participant_count: int) -> bool:
    turns = len(debate_entries(history))
    return turns > 0 and turns % participant_count == 0


def round_number(history: Sequence[TurnEntry], participant_count: int) -> int:
    """Rounds started so far (a partially played round counts)."""
    return math.ceil(len(debate_entries(history)) / participant_count)
