"""Tests for arena/controller.py."""

import asyncio
from collections.abc import Callable

import pytest

from arena.controller import Action, DebateController, DebateStateError
from arena.models import MEDIATOR, ControllerState, DebateSettings, DebateSnapshot, Participant, TurnEntry
from arena.providers.base import NetworkError, PlaybackError, TurnGenerator
from arena.voices import assign_voices
from tests.conftest import RecordingSpeaker, ScriptedGenerator

FAST = DebateSettings(settle_delay_sec=0, mediator=False, max_rounds=3)


async def _until(controller: DebateController, predicate: Callable[[DebateSnapshot], bool]) -> DebateSnapshot:
    return await asyncio.wait_for(controller.wait_for(predicate), 2)


def _speakers(history) -> list[int]:
    return [e.speaker_index for e in history]


# --- construction ----------------------------------------------------------


def test_rejects_too_few_participants():
    with pytest.raises(ValueError, match="2-5 participants"):
        DebateController([Participant("Solo")], "topic", ScriptedGenerator())


def test_rejects_too_many_participants():
    crowd = [Participant(f"P{i}") for i in range(6)]
    with pytest.raises(ValueError, match="got 6"):
        DebateController(crowd, "topic", ScriptedGenerator())


def test_voice_requires_speaker(two_participants):
    with pytest.raises(ValueError, match="no speaker"):
        DebateController(two_participants, "topic", ScriptedGenerator(), DebateSettings(voice=True))


def test_initial_snapshot(two_participants):
    controller = DebateController(two_participants, "Is tea better than coffee?", ScriptedGenerator())
    snap = controller.snapshot()
    assert snap.state is ControllerState.IDLE
    assert snap.history == ()
    assert snap.draft is None
    assert snap.next_speaker_index == 0
    assert snap.round_number == 0
    assert not snap.complete


# --- full runs -------------------------------------------------------------


async def test_two_participants_three_rounds_halts_after_six_turns(two_participants):
    gen = ScriptedGenerator()
    controller = DebateController(two_participants, "AI and jobs", gen, FAST)
    controller.start()

    snap = await _until(controller, lambda s: s.complete)
    await asyncio.sleep(0.01)

    assert snap.state is ControllerState.IDLE
    assert snap.round_number == 3
    assert _speakers(controller.history) == [0, 1, 0, 1, 0, 1]
    assert len(gen.requests) == 6
    assert [e.text for e in controller.history] == [f"Turn {i}" for i in range(1, 7)]


async def test_finish_as_stopped(two_participants):
    settings = DebateSettings(settle_delay_sec=0, mediator=False, max_rounds=1, finish_as_stopped=True)
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), settings)
    controller.start()

    snap = await _until(controller, lambda s: s.complete)
    assert snap.state is ControllerState.STOPPED
    assert len(controller.history) == 2


async def test_requests_carry_prior_history(three_participants):
    gen = ScriptedGenerator()
    settings = DebateSettings(settle_delay_sec=0, mediator=False, max_rounds=1, response_length=5)
    controller = DebateController(three_participants, "Pineapple on pizza", gen, settings)
    controller.start()
    await _until(controller, lambda s: s.complete)

    assert [r.current_speaker_index for r in gen.requests] == [0, 1, 2]
    assert [len(r.history) for r in gen.requests] == [0, 1, 2]
    assert all(r.topic == "Pineapple on pizza" for r in gen.requests)
    assert all(r.response_length == 5 for r in gen.requests)
    assert gen.requests[2].history == controller.history[:2]


async def test_streamed_deltas_build_the_draft(two_participants):
    gen = ScriptedGenerator([["Know", " thy", "self"]])
    settings = DebateSettings(settle_delay_sec=0, mediator=False, max_rounds=1)
    controller = DebateController(two_participants, "topic", gen, settings)
    drafts: list[str] = []
    controller.subscribe(lambda s: drafts.append(s.draft) if s.draft else None)
    controller.start()
    await _until(controller, lambda s: s.complete)

    assert drafts[:3] == ["Know", "Know thy", "Know thyself"]
    assert controller.history[0] == TurnEntry(0, "Know thyself")


async def test_empty_stream_still_appends_an_entry(two_participants):
    gen = ScriptedGenerator([[]])
    settings = DebateSettings(settle_delay_sec=0, mediator=False, max_rounds=1)
    controller = DebateController(two_participants, "topic", gen, settings)
    controller.start()
    await _until(controller, lambda s: s.complete)
    assert controller.history[0] == TurnEntry(0, "")


async def test_voices_assigned_on_start(three_participants):
    controller = DebateController(three_participants, "topic", ScriptedGenerator(), FAST)
    assert controller.voices == ()
    controller.start()
    assert list(controller.voices) == assign_voices(three_participants)
    await controller.aclose()


# --- mediator --------------------------------------------------------------


async def test_mediator_submission_appends_one_entry(two_participants):
    gen = ScriptedGenerator()
    settings = DebateSettings(settle_delay_sec=0, mediator=True)
    controller = DebateController(two_participants, "topic", gen, settings)
    controller.start()

    await _until(controller, lambda s: s.state is ControllerState.AWAITING_MEDIATOR)
    assert len(controller.history) == 2
    assert len(gen.requests) == 2

    controller.submit_mediator("  Focus on costs  ")
    assert controller.history[-1] == TurnEntry(MEDIATOR, "Focus on costs")
    assert controller.state is ControllerState.IDLE

    snap = await _until(
        controller, lambda s: s.state is ControllerState.AWAITING_MEDIATOR and len(s.history) == 5
    )
    assert gen.requests[2].current_speaker_index == 0
    assert gen.requests[2].history[-1] == TurnEntry(MEDIATOR, "Focus on costs")
    assert snap.round_number == 2
    assert sum(1 for e in snap.history if e.is_mediator) == 1
    await controller.aclose()


async def test_mediator_skip_appends_nothing(two_participants):
    gen = ScriptedGenerator()
    settings = DebateSettings(settle_delay_sec=0, mediator=True)
    controller = DebateController(two_participants, "topic", gen, settings)
    controller.start()

    await _until(controller, lambda s: s.state is ControllerState.AWAITING_MEDIATOR)
    controller.skip_mediator()
    assert len(controller.history) == 2

    await _until(controller, lambda s: s.state is ControllerState.AWAITING_MEDIATOR and len(s.history) == 4)
    assert not any(e.is_mediator for e in controller.history)
    assert gen.requests[2].current_speaker_index == 0
    await controller.aclose()


async def test_whitespace_only_submission_counts_as_skip(two_participants):
    settings = DebateSettings(settle_delay_sec=0, mediator=True)
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), settings)
    controller.start()
    await _until(controller, lambda s: s.state is ControllerState.AWAITING_MEDIATOR)

    controller.dispatch(Action.SUBMIT_MEDIATOR, "   ")
    assert len(controller.history) == 2
    await controller.aclose()


async def test_round_robin_survives_mediator_entries(three_participants):
    settings = DebateSettings(settle_delay_sec=0, mediator=True, max_rounds=2)
    controller = DebateController(three_participants, "topic", ScriptedGenerator(), settings)
    controller.start()

    await _until(controller, lambda s: s.state is ControllerState.AWAITING_MEDIATOR)
    controller.submit_mediator("Zork, be nice.")
    snap = await _until(controller, lambda s: s.complete)

    assert snap.history[3].is_mediator
    assert [e.speaker_index for e in snap.history if not e.is_mediator] == [0, 1, 2, 0, 1, 2]
    assert snap.round_number == 2


async def test_max_rounds_wins_over_mediator_prompt(two_participants):
    settings = DebateSettings(settle_delay_sec=0, mediator=True, max_rounds=1)
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), settings)
    controller.start()
    snap = await _until(controller, lambda s: s.complete)
    assert snap.state is ControllerState.IDLE


async def test_mediator_input_while_paused_stays_paused(two_participants):
    gen = ScriptedGenerator()
    settings = DebateSettings(settle_delay_sec=0, mediator=True)
    controller = DebateController(two_participants, "topic", gen, settings)
    controller.start()
    await _until(controller, lambda s: s.state is ControllerState.AWAITING_MEDIATOR)

    controller.pause()
    assert controller.state is ControllerState.AWAITING_MEDIATOR
    assert controller.snapshot().paused

    controller.submit_mediator("Wait for it")
    assert controller.state is ControllerState.PAUSED
    await asyncio.sleep(0.01)
    assert len(gen.requests) == 2

    controller.resume()
    assert controller.state is ControllerState.STREAMING
    await _until(controller, lambda s: len(s.history) == 4)
    assert gen.requests[2].current_speaker_index == 0
    await controller.aclose()


# --- stop ------------------------------------------------------------------


async def test_stop_during_streaming_discards_the_partial_turn(two_participants):
    gate = asyncio.Event()
    gen = ScriptedGenerator([["Hel", "lo"]], gate=gate)
    controller = DebateController(two_participants, "topic", gen, FAST)
    controller.start()

    await _until(controller, lambda s: s.draft == "Hel")
    controller.stop()
    snap = controller.snapshot()
    assert snap.state is ControllerState.STOPPED
    assert snap.draft is None

    await controller.aclose()
    assert gen.cancelled

    gate.set()
    gen.last_on_delta("late")
    await asyncio.sleep(0.01)

    snap = controller.snapshot()
    assert snap.history == ()
    assert snap.draft is None
    assert snap.error is None
    assert len(gen.requests) == 1


class StubbornGenerator(TurnGenerator):
    """Swallows cancellation and keeps emitting, like a badly behaved client."""

    def __init__(self) -> None:
        self.finished = False

    async def stream_turn(self, request, on_delta) -> None:
        on_delta("partial")
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            pass
        on_delta(" more")
        self.finished = True


async def test_late_completion_after_stop_is_ignored(two_participants):
    gen = StubbornGenerator()
    controller = DebateController(two_participants, "topic", gen, FAST)
    controller.start()
    await _until(controller, lambda s: s.draft == "partial")

    await controller.aclose()

    assert gen.finished
    snap = controller.snapshot()
    assert snap.state is ControllerState.STOPPED
    assert snap.history == ()
    assert snap.draft is None


async def test_stop_before_start_then_start_raises(two_participants):
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), FAST)
    controller.stop()
    assert controller.state is ControllerState.STOPPED
    with pytest.raises(DebateStateError):
        controller.start()


async def test_stop_is_idempotent(two_participants):
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), FAST)
    controller.start()
    controller.stop()
    controller.stop()
    await controller.aclose()
    assert controller.state is ControllerState.STOPPED


async def test_stop_while_awaiting_mediator(two_participants):
    settings = DebateSettings(settle_delay_sec=0, mediator=True)
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), settings)
    controller.start()
    await _until(controller, lambda s: s.state is ControllerState.AWAITING_MEDIATOR)
    controller.stop()
    with pytest.raises(DebateStateError):
        controller.submit_mediator("too late")
    assert len(controller.history) == 2


# --- errors and retry ------------------------------------------------------


async def test_error_then_retry_reuses_history(two_participants):
    gen = ScriptedGenerator([["A"], NetworkError("gateway", "Rate limit exceeded"), ["B"]])
    settings = DebateSettings(settle_delay_sec=0, mediator=False, max_rounds=1)
    controller = DebateController(two_participants, "topic", gen, settings)
    controller.start()

    snap = await _until(controller, lambda s: s.state is ControllerState.ERRORED)
    assert snap.error == "Rate limit exceeded"
    assert snap.draft is None
    assert snap.history == (TurnEntry(0, "A"),)

    controller.retry()
    assert controller.snapshot().error is None
    snap = await _until(controller, lambda s: s.complete)

    assert [e.text for e in snap.history] == ["A", "B"]
    assert gen.requests[2].history == gen.requests[1].history
    assert gen.requests[2].current_speaker_index == 1


async def test_unexpected_exception_becomes_error_message(two_participants):
    gen = ScriptedGenerator([RuntimeError("kaput")])
    controller = DebateController(two_participants, "topic", gen, FAST)
    controller.start()
    snap = await _until(controller, lambda s: s.state is ControllerState.ERRORED)
    assert snap.error == "kaput"
    assert snap.history == ()


async def test_retry_requires_error_state(two_participants):
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), FAST)
    with pytest.raises(DebateStateError, match="Nothing to retry"):
        controller.retry()


async def test_retry_while_paused_is_allowed(two_participants):
    gen = ScriptedGenerator([NetworkError("gateway", "down")])
    settings = DebateSettings(settle_delay_sec=0, mediator=False, max_rounds=1)
    controller = DebateController(two_participants, "topic", gen, settings)
    controller.start()
    await _until(controller, lambda s: s.state is ControllerState.ERRORED)

    controller.pause()
    controller.retry()
    snap = await _until(controller, lambda s: s.state is ControllerState.PAUSED)
    assert len(snap.history) == 1


# --- pause / resume --------------------------------------------------------


async def test_pause_during_streaming_takes_effect_after_the_turn(two_participants):
    gate = asyncio.Event()
    gen = ScriptedGenerator([["x", "y"]], gate=gate)
    controller = DebateController(two_participants, "topic", gen, FAST)
    controller.start()

    await _until(controller, lambda s: s.draft == "x")
    controller.pause()
    snap = controller.snapshot()
    assert snap.paused
    assert snap.state is ControllerState.STREAMING

    gate.set()
    snap = await _until(controller, lambda s: s.state is ControllerState.PAUSED)
    assert snap.history == (TurnEntry(0, "xy"),)
    await asyncio.sleep(0.01)
    assert len(gen.requests) == 1

    controller.resume()
    assert controller.state is ControllerState.STREAMING
    await _until(controller, lambda s: len(s.history) == 2)
    assert gen.requests[1].current_speaker_index == 1
    await controller.aclose()


async def test_pause_during_settle_delay_cancels_it(two_participants):
    gen = ScriptedGenerator()
    settings = DebateSettings(settle_delay_sec=30, mediator=False)
    controller = DebateController(two_participants, "topic", gen, settings)
    controller.start()

    await _until(controller, lambda s: len(s.history) == 1 and s.state is ControllerState.IDLE)
    controller.pause()
    assert controller.state is ControllerState.PAUSED

    controller.resume()
    assert controller.state is ControllerState.STREAMING
    await _until(controller, lambda s: len(s.history) == 2)
    assert len(gen.requests) == 2
    assert gen.requests[1].current_speaker_index == 1
    await controller.aclose()


async def test_pause_twice_is_harmless(two_participants):
    settings = DebateSettings(settle_delay_sec=30, mediator=False)
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), settings)
    controller.start()
    await _until(controller, lambda s: s.state is ControllerState.IDLE and len(s.history) == 1)
    controller.pause()
    controller.pause()
    assert controller.state is ControllerState.PAUSED
    await controller.aclose()


async def test_pause_before_start_raises(two_participants):
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), FAST)
    with pytest.raises(DebateStateError, match="Cannot pause"):
        controller.pause()


async def test_resume_without_pause_raises(two_participants):
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), FAST)
    controller.start()
    with pytest.raises(DebateStateError, match="not paused"):
        controller.resume()
    await controller.aclose()


async def test_start_twice_raises(two_participants):
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), FAST)
    controller.start()
    with pytest.raises(DebateStateError, match="already been started"):
        controller.start()
    await controller.aclose()


async def test_mediator_input_outside_prompt_raises(two_participants):
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), FAST)
    controller.start()
    with pytest.raises(DebateStateError, match="Not waiting for the mediator"):
        controller.submit_mediator("hello")
    await controller.aclose()


# --- voice gating ----------------------------------------------------------


async def test_next_turn_waits_for_playback(two_participants):
    speaker_gate = asyncio.Event()
    speaker = RecordingSpeaker(gate=speaker_gate)
    gen = ScriptedGenerator()
    settings = DebateSettings(settle_delay_sec=0, mediator=False, max_rounds=1, voice=True)
    controller = DebateController(two_participants, "topic", gen, settings, speaker=speaker)
    controller.start()

    await _until(controller, lambda s: s.state is ControllerState.AWAITING_PLAYBACK)
    await asyncio.sleep(0.01)
    assert len(gen.requests) == 1
    assert speaker.calls == [("Turn 1", controller.voices[0], two_participants[0])]

    speaker_gate.set()
    snap = await _until(controller, lambda s: s.complete)
    assert len(snap.history) == 2
    assert len(speaker.calls) == 1


async def test_final_entry_completes_before_playback(two_participants):
    speaker_gate = asyncio.Event()
    speaker = RecordingSpeaker(gate=speaker_gate)
    settings = DebateSettings(settle_delay_sec=0, mediator=False, max_rounds=1, voice=True)
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), settings, speaker=speaker)
    controller.start()

    await _until(controller, lambda s: s.state is ControllerState.AWAITING_PLAYBACK)
    speaker_gate.set()
    snap = await _until(controller, lambda s: len(s.history) == 2)

    assert snap.complete
    assert snap.state is ControllerState.IDLE
    assert [call[0] for call in speaker.calls] == ["Turn 1"]


async def test_mid_debate_round_end_is_spoken(two_participants):
    speaker = RecordingSpeaker()
    settings = DebateSettings(settle_delay_sec=0, mediator=False, max_rounds=2, voice=True)
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), settings, speaker=speaker)
    controller.start()

    snap = await _until(controller, lambda s: s.complete)
    assert len(snap.history) == 4
    assert [call[1] for call in speaker.calls] == [controller.voices[0], controller.voices[1], controller.voices[0]]


async def test_playback_failure_does_not_stall_the_debate(two_participants):
    speaker = RecordingSpeaker(error=PlaybackError("speech", "TTS failed"))
    settings = DebateSettings(settle_delay_sec=0, mediator=False, max_rounds=2, voice=True)
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), settings, speaker=speaker)
    controller.start()

    snap = await _until(controller, lambda s: s.complete)
    assert len(speaker.calls) == 3
    assert snap.error is None


async def test_stop_during_playback(two_participants):
    speaker = RecordingSpeaker(gate=asyncio.Event())
    gen = ScriptedGenerator()
    settings = DebateSettings(settle_delay_sec=0, mediator=False, voice=True)
    controller = DebateController(two_participants, "topic", gen, settings, speaker=speaker)
    controller.start()

    await _until(controller, lambda s: s.state is ControllerState.AWAITING_PLAYBACK)
    await controller.aclose()
    await asyncio.sleep(0.01)
    assert controller.state is ControllerState.STOPPED
    assert len(gen.requests) == 1
    assert len(controller.history) == 1


# --- listeners -------------------------------------------------------------


async def test_unsubscribe_stops_notifications(two_participants):
    seen: list[DebateSnapshot] = []
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), FAST)
    unsubscribe = controller.subscribe(seen.append)
    controller.start()
    assert seen[-1].state is ControllerState.STREAMING

    unsubscribe()
    count = len(seen)
    await controller.aclose()
    assert len(seen) == count


async def test_failing_listener_does_not_break_the_debate(two_participants):
    def broken(_snap: DebateSnapshot) -> None:
        raise RuntimeError("renderer crashed")

    settings = DebateSettings(settle_delay_sec=0, mediator=False, max_rounds=1)
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), settings)
    controller.subscribe(broken)
    controller.start()
    snap = await _until(controller, lambda s: s.complete)
    assert len(snap.history) == 2


async def test_repeated_pauses_do_not_accumulate_aborted_tasks(two_participants):
    settings = DebateSettings(settle_delay_sec=30, mediator=False)
    controller = DebateController(two_participants, "topic", ScriptedGenerator(), settings)
    controller.start()

    for turns in range(1, 5):
        await _until(controller, lambda s, n=turns: len(s.history) == n and s.state is ControllerState.IDLE)
        controller.pause()
        controller.resume()

    assert len(controller._aborted) <= 1
    await controller.aclose()
