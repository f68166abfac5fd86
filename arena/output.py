"""Rich console rendering of a live debate and markdown transcript save."""

import logging
import re
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from arena.models import ControllerState, DebateReport, DebateSnapshot, Participant, TurnEntry
from arena.scheduler import debate_entries

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_SPEAKER_STYLES = ["bold cyan", "bold magenta", "bold green", "bold yellow", "bold blue"]


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def speaker_name(entry: TurnEntry, participants: Sequence[Participant]) -> str:
    return "Mediator" if entry.is_mediator else participants[entry.speaker_index].name


class LiveTranscript:
    """Controller listener that prints drafts as they stream and notes state changes."""

    def __init__(self, participants: Sequence[Participant], out: Console | None = None) -> None:
        self._participants = list(participants)
        self._console = out or console
        self._printed_entries = 0
        self._printed_draft = 0
        self._last_state: ControllerState | None = None
        self._last_paused = False

    def __call__(self, snap: DebateSnapshot) -> None:
        # close out entries finalized since the last call
        while self._printed_entries < len(snap.history):
            entry = snap.history[self._printed_entries]
            if entry.is_mediator:
                self._console.print(Panel(entry.text, title="[bold]Mediator[/bold]", border_style="dim"))
            else:
                self._console.print(entry.text[self._printed_draft:], end="", markup=False, highlight=False)
                self._console.print()
            self._printed_entries += 1
            self._printed_draft = 0

        if snap.state is ControllerState.STREAMING and self._last_state is not ControllerState.STREAMING:
            index = snap.next_speaker_index
            name = self._participants[index].name
            style = _SPEAKER_STYLES[index % len(_SPEAKER_STYLES)]
            current_round = len(debate_entries(snap.history)) // len(self._participants) + 1
            self._console.print(Rule(f"[{style}]{name}[/{style}] · round {current_round}"))

        if snap.draft and len(snap.draft) > self._printed_draft:
            self._console.print(snap.draft[self._printed_draft:], end="", markup=False, highlight=False)
            self._printed_draft = len(snap.draft)
        elif snap.draft is None and self._printed_draft and snap.state is not ControllerState.STREAMING:
            # draft discarded (error or stop)
            self._console.print()
            self._printed_draft = 0

        if snap.paused != self._last_paused:
            if snap.paused:
                self._console.print("[yellow]Paused[/yellow]")
            elif snap.state is not ControllerState.STOPPED:
                self._console.print("[green]Resumed[/green]")
            self._last_paused = snap.paused

        if snap.state is not self._last_state:
            if snap.state is ControllerState.ERRORED:
                self._console.print(f"[bold red]Error:[/bold red] {snap.error}")
            elif snap.state is ControllerState.AWAITING_MEDIATOR:
                self._console.print(Rule(f"[dim]End of round {snap.round_number}[/dim]"))
            elif snap.state is ControllerState.STOPPED and not snap.complete:
                self._console.print("[yellow]Debate stopped.[/yellow]")
            elif snap.complete:
                self._console.print(Rule("[bold green]Debate complete[/bold green]"))
            self._last_state = snap.state


def print_report(report: DebateReport) -> None:
    """Print the debate report to the console."""
    console.print(Rule("[bold green]Debate Report[/bold green]"))
    console.print(Markdown(report_markdown(report)))


def report_markdown(report: DebateReport) -> str:
    lines: list[str] = ["## Overview", "", report.overview, ""]
    if report.key_insights:
        lines += ["## Key Insights", ""] + [f"- {i}" for i in report.key_insights] + [""]
    for p in report.participants:
        lines += [f"### {p.name} ({p.sentiment})", "", p.summary, ""]
        if p.driving_points:
            lines += ["**Driving points:**", ""] + [f"- {d}" for d in p.driving_points] + [""]
        if p.key_arguments:
            lines += ["**Key arguments:**", ""] + [f"- {a}" for a in p.key_arguments] + [""]
        if p.final_stance:
            lines += [f"*Final stance:* {p.final_stance}", ""]
    if report.key_takeaways:
        lines += ["## Key Takeaways", ""] + [f"- {t}" for t in report.key_takeaways] + [""]
    return "\n".join(lines)


def print_summary(participants: Sequence[Participant], history: Sequence[TurnEntry], duration_sec: float) -> None:
    turns = debate_entries(history)
    interjections = len(history) - len(turns)
    console.print(
        Text(
            f"Participants: {len(participants)} | "
            f"Turns: {len(turns)} | "
            f"Mediator interjections: {interjections} | "
            f"Duration: {duration_sec:.1f}s",
            style="dim",
        )
    )


def save_transcript(
    participants: Sequence[Participant],
    topic: str,
    history: Sequence[TurnEntry],
    output_dir: Path,
    report: DebateReport | None = None,
    slug_override: str | None = None,
) -> Path:
    """Save the debate transcript (and report, if any) as a markdown file.

    Args:
        participants: Debate line-up in speaking order.
        topic: The debate topic.
        history: All finalized entries, mediator interjections included.
        output_dir: Directory to save the file in.
        report: Optional generated report, appended at the end.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the topic. Used for debate files.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(topic)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    n = len(participants)
    turns = len(debate_entries(history))
    lines: list[str] = [
        f"# Debate: {topic[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Participants:** {', '.join(p.name for p in participants)}",
        f"**Turns:** {turns}",
        f"**Rounds:** {-(-turns // n)}",
        "",
    ]
    for p in participants:
        lines.append(f"- **{p.name}**: {p.description}" if p.description else f"- **{p.name}**")
    lines += ["", "---", ""]

    turn = 0
    for entry in history:
        if entry.is_mediator:
            lines += ["> **Mediator:** " + entry.text.replace("\n", "\n> "), ""]
            continue
        if turn % n == 0:
            lines += [f"## Round {turn // n + 1}", ""]
        turn += 1
        lines += [f"### {speaker_name(entry, participants)}", "", entry.text, ""]

    if report is not None:
        lines += ["---", "", "# Report", "", report_markdown(report)]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Transcript saved to: %s", filepath)
    return filepath
