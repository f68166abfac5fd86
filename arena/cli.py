"""Click CLI — loads config, builds the collaborators, runs a debate in the console."""

import asyncio
import dataclasses
import logging
import sys
import time
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from config.config_loader import AppConfig, load_config
from arena.controller import DebateController
from arena.debate_file import parse_file, parse_participant
from arena.models import MAX_PARTICIPANTS, MIN_PARTICIPANTS, ControllerState, DebateReport, DebateSettings, Participant
from arena.output import LiveTranscript, print_report, print_summary, save_transcript
from arena.playback import CommandSink, FileSink, VoicePlayer
from arena.providers.base import ProviderError
from arena.providers.gateway import GatewayGenerator
from arena.providers.openai_provider import CompletionClient
from arena.providers.speech import ElevenLabsSpeech
from arena.report import generate_report
from arena.suggest import suggest_personality

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_STOP_COMMAND = "/stop"


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # per-chunk request logs drown out the streamed text
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _resolve_settings(
    config: AppConfig,
    profile_name: str | None,
    rounds: int | None,
    length: int | None,
    voice: bool | None,
) -> DebateSettings:
    """Merge CLI flags over the chosen profile over config defaults.

    Raises:
        click.BadParameter: If the profile is not defined in settings.yaml.
    """
    name = profile_name or config.defaults.profile
    if name not in config.profiles:
        raise click.BadParameter(
            f"unknown profile '{name}' (choose from {', '.join(sorted(config.profiles))})",
            param_hint="--profile",
        )
    profile = config.profiles[name]
    return DebateSettings(
        response_length=length if length is not None else config.defaults.response_length,
        voice=voice if voice is not None else config.defaults.voice,
        max_rounds=rounds if rounds is not None else profile.max_rounds,
        mediator=profile.mediator,
        settle_delay_sec=config.defaults.settle_delay_sec,
        finish_as_stopped=profile.finish_as_stopped,
    )


def _apply_file_metadata(
    metadata: dict,
    profile: str | None,
    rounds: int | None,
    length: int | None,
    voice: bool | None,
) -> tuple[str | None, int | None, int | None, bool | None]:
    """CLI flags win; front matter fills in only what was not given on the command line."""
    return (
        profile if profile is not None else metadata.get("profile"),
        rounds if rounds is not None else (int(metadata["rounds"]) if "rounds" in metadata else None),
        length if length is not None else (int(metadata["length"]) if "length" in metadata else None),
        voice if voice is not None else (bool(metadata["voice"]) if "voice" in metadata else None),
    )


async def _add_suggestions(
    topic: str,
    participants: list[Participant],
    count: int,
    client: CompletionClient,
    config: AppConfig,
) -> list[Participant]:
    result = list(participants)
    for _ in range(count):
        if len(result) >= MAX_PARTICIPANTS:
            break
        suggestion = await suggest_personality(topic, [p.name for p in result], client, config.prompts)
        console.print(f"Suggested: [bold]{suggestion.name}[/bold] — {suggestion.description}")
        result.append(suggestion)
    return result


async def _drive(controller: DebateController) -> None:
    """Answer the controller's blocking states from the terminal until the debate ends."""

    def needs_attention(snap) -> bool:
        return snap.complete or snap.state in (
            ControllerState.STOPPED,
            ControllerState.ERRORED,
            ControllerState.AWAITING_MEDIATOR,
        )

    while True:
        snap = await controller.wait_for(needs_attention)
        if snap.complete or snap.state is ControllerState.STOPPED:
            return
        if snap.state is ControllerState.AWAITING_MEDIATOR:
            text = await asyncio.to_thread(
                click.prompt,
                f"Mediator (Enter to skip, {_STOP_COMMAND} to end)",
                default="",
                show_default=False,
            )
            if text.strip() == _STOP_COMMAND:
                controller.stop()
                return
            controller.submit_mediator(text)
        else:
            if await asyncio.to_thread(click.confirm, "Retry this turn?", default=True):
                controller.retry()
            else:
                controller.stop()
                return


async def _run_debate(
    topic: str,
    participants: list[Participant],
    settings: DebateSettings,
    config: AppConfig,
    output_dir: Path,
    want_report: bool,
    slug_override: str | None = None,
) -> Path:
    """Run one debate end to end and return the saved transcript path."""
    generator = GatewayGenerator(config.gateway, config.prompts)
    speech: ElevenLabsSpeech | None = None
    speaker = None
    if settings.voice:
        speech = ElevenLabsSpeech(config.speech)
        command = config.speech.player_command
        sink = CommandSink(command) if command else FileSink(output_dir / "audio")
        speaker = VoicePlayer(speech, sink)

    controller = DebateController(participants, topic, generator, settings, speaker)
    controller.subscribe(LiveTranscript(participants))

    rounds_label = settings.max_rounds if settings.max_rounds is not None else "open-ended"
    console.print(f"\n[bold cyan]Debate Arena[/bold cyan] — {len(participants)} participants, rounds: {rounds_label}")
    console.print(f"Topic: [italic]{topic[:80]}{'...' if len(topic) > 80 else ''}[/italic]\n")

    start = time.monotonic()
    try:
        controller.start()
        await _drive(controller)
    finally:
        history = controller.history
        await controller.aclose()
        await generator.aclose()
        if speech is not None:
            await speech.aclose()

    report: DebateReport | None = None
    if want_report and history:
        try:
            client = CompletionClient(config.gateway)
            with console.status("Writing report..."):
                report = await generate_report(participants, topic, history, client, config.prompts)
        except ProviderError as exc:
            console.print(f"[yellow]Report skipped:[/yellow] {exc}")
        else:
            print_report(report)

    print_summary(participants, history, time.monotonic() - start)
    saved = save_transcript(participants, topic, history, output_dir, report=report, slug_override=slug_override)
    console.print(f"\n[dim]Saved to: {saved}[/dim]")
    return saved


@click.command()
@click.argument("topic", required=False)
@click.option("-p", "--participant", "participant_args", multiple=True,
              help='Participant as "Name: description". Repeat for each (2-5).')
@click.option("--file", "debate_file", type=click.Path(exists=True),
              help="Read topic and participants from a .md file with front matter")
@click.option("--profile", default=None, help="Debate profile from settings.yaml (classic, panel)")
@click.option("--rounds", default=None, type=click.IntRange(min=1), help="Stop after this many rounds")
@click.option("--length", default=None, type=click.IntRange(1, 5), help="Response length 1 (short) to 5 (long)")
@click.option("--voice/--no-voice", default=None, help="Speak each turn with ElevenLabs")
@click.option("--suggest", default=0, type=click.IntRange(0, MAX_PARTICIPANTS),
              help="Add this many AI-suggested participants")
@click.option("--report/--no-report", default=True, help="Generate a report when the debate ends")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    topic: str | None,
    participant_args: tuple[str, ...],
    debate_file: str | None,
    profile: str | None,
    rounds: int | None,
    length: int | None,
    voice: bool | None,
    suggest: int,
    report: bool,
    output_path: str | None,
    verbose: bool,
) -> None:
    """Debate Arena -- personalities argue a topic, turn by turn.

    \b
    Examples:
      debate-arena "Is free will an illusion?" -p "Socrates: Questions everything" -p "Marie Curie"
      debate-arena "Should cities ban cars?" --suggest 3 --rounds 2
      debate-arena "Pineapple on pizza?" -p Plato -p Oprah --profile classic --voice
      debate-arena --file debate.md
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    slug_override: str | None = None
    participants: list[Participant] = []
    if debate_file:
        file_path = Path(debate_file)
        topic, participants, metadata = parse_file(file_path)
        profile, rounds, length, voice = _apply_file_metadata(metadata, profile, rounds, length, voice)
        slug_override = file_path.stem

    if not topic:
        console.print("[bold red]Error:[/bold red] Provide a TOPIC argument or --file.")
        sys.exit(1)

    try:
        participants += [parse_participant(arg) for arg in participant_args]
    except ValueError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)

    if not config.gateway_available:
        console.print(
            f"[bold red]Error:[/bold red] No gateway API key. Set {config.gateway.api_key_env} in .env."
        )
        sys.exit(1)

    settings = _resolve_settings(config, profile, rounds, length, voice)
    if settings.voice and not config.speech_available:
        console.print(f"[yellow]Voice disabled:[/yellow] set {config.speech.api_key_env} in .env to enable it.")
        settings = dataclasses.replace(settings, voice=False)

    output_dir = Path(output_path) if output_path else config.defaults.output_dir

    async def run() -> None:
        nonlocal participants
        if suggest:
            client = CompletionClient(config.gateway)
            participants = await _add_suggestions(topic, participants, suggest, client, config)
        if not MIN_PARTICIPANTS <= len(participants) <= MAX_PARTICIPANTS:
            raise click.UsageError(
                f"Need {MIN_PARTICIPANTS}-{MAX_PARTICIPANTS} participants, "
                f"got {len(participants)}. Use -p or --suggest."
            )
        await _run_debate(topic, participants, settings, config, output_dir, report, slug_override)

    try:
        asyncio.run(run())
    except ProviderError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
