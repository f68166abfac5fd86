"""Ask the gateway for a debate personality that fits the topic."""

import json
import logging
from collections.abc import Sequence

from config.config_loader import PromptsConfig
from arena.models import Participant
from arena.providers.base import ReportError
from arena.providers.openai_provider import CompletionClient

logger = logging.getLogger(__name__)

SUGGEST_TOOL = {
    "type": "function",
    "function": {
        "name": "suggest_personality",
        "description": "Return a suggested debate personality.",
        "parameters": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Name of the personality"},
                "description": {
                    "type": "string",
                    "description": "1-2 sentence description of their perspective and debate style",
                },
            },
            "required": ["name", "description"],
            "additionalProperties": False,
        },
    },
}


async def suggest_personality(
    topic: str,
    existing_names: Sequence[str],
    client: CompletionClient,
    prompts: PromptsConfig,
) -> Participant:
    """Return one suggested participant not already in ``existing_names``.

    Raises:
        ReportError: If the model does not return a usable tool call.
    """
    exclude = ""
    if existing_names:
        exclude = f"\nDo NOT suggest any of these already-chosen personalities: {', '.join(existing_names)}."

    message = await client.complete(
        [
            {"role": "system", "content": prompts.suggest.format(exclude=exclude)},
            {"role": "user", "content": f'Suggest a personality for this debate topic: "{topic}"'},
        ],
        tools=[SUGGEST_TOOL],
        tool_choice={"type": "function", "function": {"name": "suggest_personality"}},
    )

    tool_calls = getattr(message, "tool_calls", None) or []
    if not tool_calls or not tool_calls[0].function.arguments:
        raise ReportError("suggest", "Failed to generate personality")
    try:
        data = json.loads(tool_calls[0].function.arguments)
    except json.JSONDecodeError as exc:
        raise ReportError("suggest", f"Malformed suggestion: {exc}") from exc

    name = str(data.get("name", "")).strip()
    if not name:
        raise ReportError("suggest", "Suggestion has no name")
    suggestion = Participant(name=name, description=str(data.get("description", "")).strip())
    logger.info("Suggested personality: %s", suggestion.name)
    return suggestion
