"""Debate orchestration: the turn-taking state machine.

The controller owns the history and the state and is their only writer.
At most one operation is outstanding at any time: a generation request, a
playback, or the settle delay before the next turn. Every such operation
carries the epoch it was started in; stopping (or cancelling a pending
delay) bumps the epoch, so late callbacks from aborted work are ignored.
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine, Sequence
from enum import Enum
from typing import Any

from arena.models import (
    MAX_PARTICIPANTS,
    MEDIATOR,
    MIN_PARTICIPANTS,
    ControllerState,
    DebateSettings,
    DebateSnapshot,
    Participant,
    TurnEntry,
    TurnRequest,
)
from arena.providers.base import ProviderError, Speaker, TurnGenerator
from arena.scheduler import debate_entries, next_speaker_index, round_complete, round_number
from arena.voices import assign_voices

logger = logging.getLogger(__name__)

Listener = Callable[[DebateSnapshot], None]


class Action(Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"
    RETRY = "retry"
    SUBMIT_MEDIATOR = "submit_mediator"
    SKIP_MEDIATOR = "skip_mediator"


class DebateStateError(RuntimeError):
    """Raised when an action is not valid in the controller's current state."""


class DebateController:
    """Drives N participants through a debate, one streamed turn at a time.

    Usage:
        controller = DebateController(participants, topic, generator, settings)
        controller.subscribe(render)
        controller.start()
        await controller.wait_for(lambda s: s.complete)

    Actions are dispatched synchronously from the event loop; listeners are
    called with a fresh ``DebateSnapshot`` after every change, including
    every streamed delta.
    """

    def __init__(
        self,
        participants: Sequence[Participant],
        topic: str,
        generator: TurnGenerator,
        settings: DebateSettings | None = None,
        speaker: Speaker | None = None,
    ) -> None:
        if not MIN_PARTICIPANTS <= len(participants) <= MAX_PARTICIPANTS:
            raise ValueError(
                f"A debate needs {MIN_PARTICIPANTS}-{MAX_PARTICIPANTS} participants, got {len(participants)}"
            )
        settings = settings or DebateSettings()
        if settings.voice and speaker is None:
            raise ValueError("Voice output is enabled but no speaker was given")

        self._participants = tuple(participants)
        self._topic = topic
        self._generator = generator
        self._settings = settings
        self._speaker = speaker

        self._voices: list[str] = []
        self._history: list[TurnEntry] = []
        self._draft: str | None = None
        self._state = ControllerState.IDLE
        self._started = False
        self._paused = False
        self._complete = False
        self._error: str | None = None

        self._epoch = 0
        self._task: asyncio.Task | None = None
        self._aborted: list[asyncio.Task] = []
        self._listeners: list[Listener] = []
        self._waiters: list[tuple[Callable[[DebateSnapshot], bool], asyncio.Future]] = []

    # --- read side -------------------------------------------------------

    @property
    def participants(self) -> tuple[Participant, ...]:
        return self._participants

    @property
    def topic(self) -> str:
        return self._topic

    @property
    def settings(self) -> DebateSettings:
        return self._settings

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def history(self) -> tuple[TurnEntry, ...]:
        return tuple(self._history)

    @property
    def voices(self) -> tuple[str, ...]:
        return tuple(self._voices)

    def snapshot(self) -> DebateSnapshot:
        n = len(self._participants)
        return DebateSnapshot(
            state=self._state,
            history=tuple(self._history),
            draft=self._draft,
            next_speaker_index=next_speaker_index(self._history, n),
            round_number=round_number(self._history, n),
            paused=self._paused,
            complete=self._complete,
            error=self._error,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_for(self, predicate: Callable[[DebateSnapshot], bool]) -> DebateSnapshot:
        """Wait until a published snapshot satisfies ``predicate`` and return it."""
        snap = self.snapshot()
        if predicate(snap):
            return snap
        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        entry = (predicate, fut)
        self._waiters.append(entry)
        try:
            return await fut
        finally:
            if entry in self._waiters:
                self._waiters.remove(entry)

    # --- actions ---------------------------------------------------------

    def dispatch(self, action: Action, text: str | None = None) -> None:
        logger.debug("Action %s in state %s", action.value, self._state.value)
        if action is Action.START:
            self._start()
        elif action is Action.PAUSE:
            self._pause()
        elif action is Action.RESUME:
            self._resume()
        elif action is Action.STOP:
            self._stop()
        elif action is Action.RETRY:
            self._retry()
        elif action is Action.SUBMIT_MEDIATOR:
            self._mediator_input(text or "")
        elif action is Action.SKIP_MEDIATOR:
            self._mediator_input("")
        else:
            raise ValueError(f"Unknown action: {action!r}")

    def start(self) -> None:
        self.dispatch(Action.START)

    def pause(self) -> None:
        self.dispatch(Action.PAUSE)

    def resume(self) -> None:
        self.dispatch(Action.RESUME)

    def stop(self) -> None:
        self.dispatch(Action.STOP)

    def retry(self) -> None:
        self.dispatch(Action.RETRY)

    def submit_mediator(self, text: str) -> None:
        self.dispatch(Action.SUBMIT_MEDIATOR, text)

    def skip_mediator(self) -> None:
        self.dispatch(Action.SKIP_MEDIATOR)

    async def aclose(self) -> None:
        """Stop the debate and wait for any aborted operation to unwind."""
        self._stop()
        pending = [t for t in self._aborted if not t.done()]
        self._aborted.clear()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # --- transitions -----------------------------------------------------

    def _start(self) -> None:
        if self._started or self._state is ControllerState.STOPPED:
            raise DebateStateError("Debate has already been started")
        self._started = True
        self._voices = assign_voices(self._participants)
        logger.info(
            "Debate started: %d participants, max rounds %s, voice %s",
            len(self._participants),
            self._settings.max_rounds or "unlimited",
            "on" if self._settings.voice else "off",
        )
        self._issue_turn()

    def _pause(self) -> None:
        if not self._started or self._complete or self._state is ControllerState.STOPPED:
            raise DebateStateError(f"Cannot pause in state {self._state.value}")
        if self._paused:
            return
        self._paused = True
        logger.info("Debate paused")
        if self._state is ControllerState.IDLE:
            # only reachable while the settle delay is pending
            self._cancel_pending()
            self._set_state(ControllerState.PAUSED)
        else:
            self._notify()

    def _resume(self) -> None:
        if not self._paused:
            raise DebateStateError("Debate is not paused")
        self._paused = False
        logger.info("Debate resumed")
        if self._state is ControllerState.PAUSED:
            self._issue_turn()
        else:
            self._notify()

    def _stop(self) -> None:
        if self._state is ControllerState.STOPPED:
            return
        self._cancel_pending()
        self._draft = None
        self._paused = False
        logger.info("Debate stopped after %d turns", len(debate_entries(self._history)))
        self._set_state(ControllerState.STOPPED)

    def _retry(self) -> None:
        if self._state is not ControllerState.ERRORED:
            raise DebateStateError(f"Nothing to retry in state {self._state.value}")
        logger.info("Retrying turn %d", len(debate_entries(self._history)) + 1)
        self._issue_turn()

    def _mediator_input(self, text: str) -> None:
        if self._state is not ControllerState.AWAITING_MEDIATOR:
            raise DebateStateError(f"Not waiting for the mediator (state {self._state.value})")
        cleaned = text.strip()
        if cleaned:
            self._history.append(TurnEntry(MEDIATOR, cleaned))
            logger.info("Mediator interjected (%d chars)", len(cleaned))
        else:
            logger.info("Mediator skipped")
        self._continue()

    # --- turn lifecycle --------------------------------------------------

    def _issue_turn(self) -> None:
        speaker_index = next_speaker_index(self._history, len(self._participants))
        request = TurnRequest(
            participants=self._participants,
            current_speaker_index=speaker_index,
            topic=self._topic,
            history=tuple(self._history),
            response_length=self._settings.response_length,
        )
        self._draft = ""
        self._error = None
        self._spawn(self._run_turn(request, self._epoch))
        self._set_state(ControllerState.STREAMING)

    async def _run_turn(self, request: TurnRequest, epoch: int) -> None:
        speaker = self._participants[request.current_speaker_index]

        def on_delta(delta: str) -> None:
            if epoch != self._epoch or self._draft is None:
                return
            self._draft += delta
            self._notify()

        logger.info("Requesting turn from %s", speaker.name)
        try:
            await self._generator.stream_turn(request, on_delta)
        except asyncio.CancelledError:
            logger.debug("Turn for %s aborted", speaker.name)
            raise
        except Exception as exc:
            if epoch == self._epoch:
                self._fail(exc)
            return

        if epoch != self._epoch:
            logger.debug("Ignoring completion of an aborted turn for %s", speaker.name)
            return
        try:
            self._finalize(request.current_speaker_index)
        except Exception as exc:
            logger.exception("Could not finalize the turn for %s", speaker.name)
            self._fail(exc)

    def _finalize(self, speaker_index: int) -> None:
        entry = TurnEntry(speaker_index, self._draft or "")
        self._history.append(entry)
        self._draft = None
        logger.info(
            "Turn %d finalized: %s (%d chars)",
            len(debate_entries(self._history)),
            self._participants[speaker_index].name,
            len(entry.text),
        )
        rounds = self._rounds_reached()
        if rounds is not None:
            self._finish(rounds)
        elif self._settings.voice:
            self._spawn(self._play(entry, self._epoch))
            self._set_state(ControllerState.AWAITING_PLAYBACK)
        else:
            self._advance()

    async def _play(self, entry: TurnEntry, epoch: int) -> None:
        participant = self._participants[entry.speaker_index]
        try:
            await self._speaker.speak(entry.text, self._voices[entry.speaker_index], participant)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Playback failed for %s, continuing: %s", participant.name, exc)
        if epoch != self._epoch:
            return
        self._advance()

    def _rounds_reached(self) -> int | None:
        """Round count when the latest entry closed the final round, else None."""
        n = len(self._participants)
        if self._settings.max_rounds is None or not round_complete(self._history, n):
            return None
        rounds = round_number(self._history, n)
        return rounds if rounds >= self._settings.max_rounds else None

    def _advance(self) -> None:
        n = len(self._participants)
        if round_complete(self._history, n):
            logger.info("Round %d complete", round_number(self._history, n))
            if self._settings.mediator:
                self._set_state(ControllerState.AWAITING_MEDIATOR)
                return
        self._continue()

    def _continue(self) -> None:
        if self._paused:
            self._set_state(ControllerState.PAUSED)
            return
        self._spawn(self._settle(self._epoch))
        self._set_state(ControllerState.IDLE)

    async def _settle(self, epoch: int) -> None:
        await asyncio.sleep(self._settings.settle_delay_sec)
        if epoch != self._epoch:
            return
        self._issue_turn()

    def _finish(self, rounds: int) -> None:
        self._complete = True
        logger.info("Debate complete after %d rounds", rounds)
        if self._settings.finish_as_stopped:
            self._set_state(ControllerState.STOPPED)
        else:
            self._set_state(ControllerState.IDLE)

    def _fail(self, exc: Exception) -> None:
        self._draft = None
        if isinstance(exc, ProviderError):
            self._error = exc.message
        else:
            self._error = str(exc) or "Something went wrong"
        logger.warning("Turn failed: %s", exc)
        self._set_state(ControllerState.ERRORED)

    # --- plumbing --------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        current = self._task
        if current is not None and not current.done() and current is not asyncio.current_task():
            coro.close()
            raise RuntimeError("Another debate operation is still in flight")
        self._task = asyncio.get_running_loop().create_task(coro)
        self._task.add_done_callback(self._log_task_failure)

    def _cancel_pending(self) -> None:
        self._epoch += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
            self._aborted = [t for t in self._aborted if not t.done()]
            self._aborted.append(self._task)
        self._task = None

    @staticmethod
    def _log_task_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Debate operation crashed", exc_info=exc)

    def _set_state(self, state: ControllerState) -> None:
        if state is not self._state:
            logger.debug("State %s -> %s", self._state.value, state.value)
        self._state = state
        self._notify()

    def _notify(self) -> None:
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                logger.exception("Debate listener %r failed", listener)
        for predicate, fut in list(self._waiters):
            if not fut.done() and predicate(snap):
                fut.set_result(snap)
