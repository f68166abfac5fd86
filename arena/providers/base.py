"""Abstract collaborators used by the debate controller, and their errors."""

from abc import ABC, abstractmethod
from collections.abc import Callable

from arena.models import Participant, TurnRequest


class ProviderError(Exception):
    """Raised when a remote collaborator call fails."""

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        self.message = message
        super().__init__(f"[{service}] {message}")


class NetworkError(ProviderError):
    """Request failed in transit or came back with a non-2xx status."""


class ProtocolError(NetworkError):
    """Response carried no readable body."""


class PlaybackError(ProviderError):
    """Speech synthesis or local audio playback failed."""


class ReportError(ProviderError):
    """Report or personality suggestion could not be produced."""


class TurnGenerator(ABC):
    """Produces the text of one debate turn as a stream of deltas."""

    @abstractmethod
    async def stream_turn(self, request: TurnRequest, on_delta: Callable[[str], None]) -> None:
        """Stream one turn, calling ``on_delta`` for every text fragment in order.

        Returns when the stream is exhausted.

        Raises:
            NetworkError: On transport failure or non-success status.
            asyncio.CancelledError: When the caller aborts the turn.
        """
        ...


class Speaker(ABC):
    """Voices a finished turn. Returns once local playback has completed."""

    @abstractmethod
    async def speak(self, text: str, voice_id: str, participant: Participant) -> None:
        """Synthesize and play ``text``.

        Raises:
            PlaybackError: On synthesis or playback failure.
        """
        ...
