"""Post-debate report: send the transcript to the gateway, parse the structured JSON back."""

import json
import logging
import re
from collections.abc import Sequence
from typing import Any

from config.config_loader import PromptsConfig
from arena.models import DebateReport, Participant, ParticipantReport, TurnEntry
from arena.prompts import format_transcript
from arena.providers.base import ReportError
from arena.providers.openai_provider import CompletionClient

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def _participants_line(participants: Sequence[Participant]) -> str:
    return ", ".join(
        f'"{p.name}" ({p.description})' if p.description else f'"{p.name}"'
        for p in participants
    )


def _parse_report_json(content: str) -> dict[str, Any]:
    """Parse the model output directly, falling back to the first fenced block."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        match = _FENCE.search(content)
        if not match:
            raise ReportError("report", "Failed to parse report from AI response") from None
        try:
            data = json.loads(match.group(1).strip())
        except json.JSONDecodeError as exc:
            raise ReportError("report", f"Report JSON is malformed: {exc}") from exc
    if not isinstance(data, dict):
        raise ReportError("report", "Report must be a JSON object")
    return data


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def report_from_dict(data: dict[str, Any]) -> DebateReport:
    raw_participants = data.get("participants")
    if not isinstance(raw_participants, list):
        raw_participants = []
    participants = [
        ParticipantReport(
            name=str(p.get("name") or ""),
            summary=str(p.get("summary") or ""),
            driving_points=_str_list(p.get("drivingPoints")),
            key_arguments=_str_list(p.get("keyArguments")),
            sentiment=str(p.get("sentiment") or "Neutral"),
            final_stance=str(p.get("finalStance") or ""),
        )
        for p in raw_participants
        if isinstance(p, dict)
    ]
    return DebateReport(
        overview=str(data.get("overview") or ""),
        key_insights=_str_list(data.get("keyInsights")),
        participants=participants,
        key_takeaways=_str_list(data.get("keyTakeaways")),
    )


async def generate_report(
    participants: Sequence[Participant],
    topic: str,
    history: Sequence[TurnEntry],
    client: CompletionClient,
    prompts: PromptsConfig,
) -> DebateReport:
    """Summarize a finished (or stopped) debate.

    Raises:
        ReportError: If the transcript is empty, the call fails, or the
            response cannot be parsed.
    """
    if not history:
        raise ReportError("report", "Nothing to report: the debate has no turns yet")

    system = prompts.report.format(participants=_participants_line(participants), topic=topic)
    transcript = format_transcript(list(history), tuple(participants))

    logger.info("Generating report for %d entries", len(history))
    message = await client.complete(
        [
            {"role": "system", "content": system},
            {"role": "user", "content": transcript},
        ]
    )
    data = _parse_report_json(message.content or "")
    try:
        return report_from_dict(data)
    except (AttributeError, TypeError, ValueError) as exc:
        raise ReportError("report", f"Report has an unexpected shape: {exc}") from exc
