"""Chat prompt construction for a single debate turn."""

from config.config_loader import PromptsConfig
from arena.models import Participant, TurnEntry, TurnRequest

_MEDIATOR_LABEL = "Mediator"


def response_length_instruction(prompts: PromptsConfig, response_length: int) -> str:
    try:
        return prompts.response_lengths[response_length]
    except KeyError:
        raise ValueError(f"No length instruction configured for level {response_length}") from None


def _describe(participant: Participant) -> str:
    if participant.description:
        return f'"{participant.name}" ({participant.description})'
    return f'"{participant.name}"'


def _speaker_label(entry: TurnEntry, participants: tuple[Participant, ...]) -> str:
    if entry.is_mediator:
        return _MEDIATOR_LABEL
    return participants[entry.speaker_index].name


def format_transcript(history: tuple[TurnEntry, ...] | list[TurnEntry], participants: tuple[Participant, ...]) -> str:
    """Render the history as ``[Name]: text`` blocks."""
    return "\n\n".join(
        f"[{_speaker_label(e, participants)}]: {e.text}" for e in history
    )


def build_messages(request: TurnRequest, prompts: PromptsConfig) -> list[dict[str, str]]:
    """Build the chat messages for the participant whose turn it is.

    The speaker's own earlier turns are replayed as ``assistant`` messages;
    everyone else's, mediator included, as labelled ``user`` messages.
    """
    speaker = request.participants[request.current_speaker_index]
    others = [
        p for i, p in enumerate(request.participants) if i != request.current_speaker_index
    ]
    opening = not request.history

    system = prompts.system.format(
        name=speaker.name,
        description=speaker.description or "Not specified",
        others=", ".join(_describe(p) for p in others),
        topic=request.topic,
        length=response_length_instruction(prompts, request.response_length),
        stage=prompts.opening_stage if opening else prompts.reply_stage,
    )

    messages = [{"role": "system", "content": system}]
    for entry in request.history:
        if entry.speaker_index == request.current_speaker_index:
            messages.append({"role": "assistant", "content": entry.text})
        else:
            label = _speaker_label(entry, request.participants)
            messages.append({"role": "user", "content": f"[{label}]: {entry.text}"})

    closing = prompts.opening_request if opening else prompts.reply_request
    messages.append({"role": "user", "content": closing.format(topic=request.topic)})
    return messages
