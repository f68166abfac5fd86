"""Debate definitions stored as markdown with YAML front matter.

The body is the topic. Front matter keys, all optional::

    ---
    profile: classic
    rounds: 3
    length: 2
    voice: true
    participants:
      - name: Socrates
        description: Questions everything.
      - "Ada Lovelace: Visionary mathematician"
    ---
    Should machines be allowed to write poetry?
"""

from pathlib import Path
from typing import Any

import frontmatter

from arena.models import Participant


def parse_participant(value: Any) -> Participant:
    """Accept ``{"name", "description"}`` mappings or ``"Name: description"`` strings."""
    if isinstance(value, dict):
        name = str(value.get("name", "")).strip()
        description = str(value.get("description") or "").strip()
    else:
        name, _, description = str(value).partition(":")
        name, description = name.strip(), description.strip()
    if not name:
        raise ValueError(f"Participant without a name: {value!r}")
    return Participant(name=name, description=description)


def parse_file(file_path: Path) -> tuple[str, list[Participant], dict]:
    """Parse a debate file.

    Returns:
        (topic, participants, metadata) where metadata holds the remaining
        front matter keys (profile, rounds, length, voice). Participants is
        empty when the file does not list any.
    """
    post = frontmatter.load(str(file_path))
    topic = post.content.strip()
    metadata = dict(post.metadata)
    participants = [parse_participant(p) for p in metadata.pop("participants", None) or []]
    return topic, participants, metadata
