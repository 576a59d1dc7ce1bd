"""DOP Raccord Engine — Entry Point.

Usage:
    # Continuity insights for one scene (or every scene) of an exported project
    python main.py raccord --project project.json --scene scene-3

    # Next-shot advice after a scene (seed for reproducible advice)
    python main.py suggest --project project.json --scene scene-3 --seed 7

    # Fixable / unfixable triage of vision defects
    python main.py classify --errors errors.json

    # Two-frame vision check between a scene and the one before it
    python main.py validate --project project.json --scene scene-3 \\
        --current shot3.png --previous shot2.png

    # Retry decision for a failed frame
    python main.py decide --failed shot3.png --reference shot2.png \\
        --prompt "Hero holds the sword" --errors errors.json

    # Reference frame a scene should stay consistent with
    python main.py reference --project project.json --scene scene-3
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

import config
from pipeline.error_classifier import coerce_errors
from pipeline.llm import get_usage_summary
from pipeline.raccord_engine import RaccordEngine
from pipeline.retry_decision import apply_enhanced_prompt
from pipeline.vision_validator import format_validation_result
from schemas.raccord import ProjectSnapshot, VisionCredentials

console = Console()

_SEVERITY_STYLE = {"info": "cyan", "warning": "yellow", "critical": "bold red"}


def setup_logging():
    logging.basicConfig(
        level=getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _read_json(path_str: str) -> Any:
    path = Path(path_str)
    if not path.exists():
        console.print(f"[red]Input file not found: {path}[/red]")
        sys.exit(1)
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Could not read {path}: {e}[/red]")
        sys.exit(1)


def load_project(path_str: str) -> ProjectSnapshot:
    data = _read_json(path_str)
    # Accept either the snapshot itself or an editor export wrapping it.
    if isinstance(data, dict) and isinstance(data.get("project"), dict):
        data = data["project"]
    try:
        return ProjectSnapshot.model_validate(data)
    except ValidationError as e:
        console.print(f"[red]Invalid project file {path_str}: {e.error_count()} validation error(s)[/red]")
        sys.exit(1)


def load_errors(path_str: str) -> list:
    data = _read_json(path_str)
    if isinstance(data, dict):
        data = data.get("errors", [])
    try:
        return coerce_errors(data)
    except ValidationError as e:
        console.print(f"[red]Invalid errors file {path_str}: {e.error_count()} validation error(s)[/red]")
        sys.exit(1)


def build_credentials(args: argparse.Namespace) -> VisionCredentials | str | None:
    """--api-key wins; --provider alone picks that provider's key from the environment."""
    provider = args.provider or config.DOP_VISION_PROVIDER
    if args.api_key is not None:
        return VisionCredentials(provider=provider, api_key=args.api_key, model_id=args.model or "")
    if args.provider or args.model:
        env_key = {
            "google": config.GOOGLE_API_KEY,
            "openai": config.OPENAI_API_KEY,
            "anthropic": config.ANTHROPIC_API_KEY,
        }.get(provider, "")
        return VisionCredentials(provider=provider, api_key=env_key, model_id=args.model or "")
    return None


def _require_scene(project: ProjectSnapshot, scene_id: str):
    scene = project.find_scene(scene_id)
    if scene is None:
        console.print(f"[red]Scene not found: {scene_id}[/red]")
        sys.exit(1)
    return scene


def _print_usage():
    usage = get_usage_summary()
    if usage["calls"]:
        console.print(
            f"  [dim]Model calls: {usage['calls']}  tokens: {usage['total_tokens']:,}  "
            f"est. cost: ${usage['total_cost']:.4f}[/dim]"
        )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def run_raccord_cmd(args: argparse.Namespace):
    project = load_project(args.project)
    engine = RaccordEngine(project, locale=args.locale)
    scene_ids = [args.scene] if args.scene else [s.id for s in project.scenes]
    if args.scene:
        _require_scene(project, args.scene)

    for scene_id in scene_ids:
        insights = engine.analyze_raccord(scene_id)
        if not insights:
            console.print(f"[dim]{scene_id}: no previous scene to compare against[/dim]")
            continue
        table = Table(title=f"Raccord — {scene_id}", show_lines=False)
        table.add_column("Severity")
        table.add_column("Type")
        table.add_column("Message")
        table.add_column("Suggestion", style="dim")
        for insight in insights:
            style = _SEVERITY_STYLE.get(insight.severity, "")
            table.add_row(
                f"[{style}]{insight.severity}[/{style}]" if style else insight.severity,
                insight.type,
                insight.message,
                insight.suggestion or "",
            )
        console.print(table)
        carry = engine.extract_character_state(scene_id)
        if carry:
            console.print(carry, style="dim", markup=False)


def run_suggest_cmd(args: argparse.Namespace):
    project = load_project(args.project)
    _require_scene(project, args.scene)
    rng = random.Random(args.seed) if args.seed is not None else None
    suggestion = RaccordEngine(project, locale=args.locale, rng=rng).suggest_next_shot(args.scene)
    rec = suggestion.recommendation
    console.print(
        Panel(
            f"[bold]{suggestion.action}[/bold]\n"
            f"{rec.label} ([cyan]{rec.angle}[/cyan])\n"
            f"[dim]{rec.reason}[/dim]",
            title=suggestion.title,
            border_style="bright_blue",
        )
    )


def run_classify_cmd(args: argparse.Namespace):
    engine = RaccordEngine(ProjectSnapshot())
    result = engine.classify_errors(load_errors(args.errors))
    console.print(f"  [green]Decision:[/green] {result.decision}")
    for err in result.fixable:
        console.print(f"  [yellow]fixable[/yellow]   [{err.type}] {err.description}")
    for err in result.unfixable:
        console.print(f"  [red]unfixable[/red] [{err.type}] {err.description}")


def run_validate_cmd(args: argparse.Namespace):
    project = load_project(args.project)
    _require_scene(project, args.scene)
    idx = project.scene_index(args.scene)
    if idx <= 0:
        console.print(f"[red]Scene {args.scene} has no previous scene to validate against[/red]")
        sys.exit(1)
    prev_id = project.scenes[idx - 1].id

    engine = RaccordEngine(project, build_credentials(args), locale=args.locale)
    result = asyncio.run(
        engine.validate_raccord_with_vision(args.current, args.previous, args.scene, prev_id)
    )
    console.print(format_validation_result(result, args.locale))
    if result.decision:
        console.print(f"  [green]Decision:[/green] {result.decision}")
    if result.correction_prompt:
        console.print(f"  [green]Correction:[/green] {result.correction_prompt}")
    _print_usage()


def run_decide_cmd(args: argparse.Namespace):
    engine = RaccordEngine(ProjectSnapshot(), build_credentials(args))
    result = asyncio.run(
        engine.make_retry_decision(args.failed, args.reference, args.prompt, load_errors(args.errors))
    )
    console.print(f"  [green]Action:[/green] {result.action}  (confidence {result.confidence:.2f})")
    console.print(f"  [green]Reason:[/green] {result.reason}")
    if result.action != "skip" and result.enhanced_prompt:
        console.print(Panel(apply_enhanced_prompt(args.prompt, result), title="Next prompt"))
    _print_usage()


def run_reference_cmd(args: argparse.Namespace):
    project = load_project(args.project)
    _require_scene(project, args.scene)
    reference = RaccordEngine(project).find_reference(args.scene)
    if reference:
        console.print(f"  [green]Reference:[/green] {reference}")
    else:
        console.print(f"  [dim]No reference for {args.scene} (first shot of its location)[/dim]")


def _add_locale_arg(p: argparse.ArgumentParser):
    p.add_argument("--locale", choices=["vi", "en"], help=f"Message language (default: {config.DOP_LOCALE})")


def _add_vision_args(p: argparse.ArgumentParser):
    p.add_argument("--provider", choices=["google", "openai", "anthropic"], help="Vision provider")
    p.add_argument("--api-key", help="API key for the provider (empty string disables the model call)")
    p.add_argument("--model", help="Model id override")


def main():
    parser = argparse.ArgumentParser(
        description="DOP Raccord Engine — scene continuity checks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    rc = subparsers.add_parser("raccord", help="Continuity insights against the previous scene")
    rc.add_argument("--project", required=True, help="Exported project JSON")
    rc.add_argument("--scene", help="Scene id (default: every scene)")
    _add_locale_arg(rc)

    sg = subparsers.add_parser("suggest", help="Suggest the next shot after a scene")
    sg.add_argument("--project", required=True, help="Exported project JSON")
    sg.add_argument("--scene", required=True, help="Last scene id")
    sg.add_argument("--seed", type=int, help="Random seed for reproducible advice")
    _add_locale_arg(sg)

    cl = subparsers.add_parser("classify", help="Split vision defects into fixable / unfixable")
    cl.add_argument("--errors", required=True, help="JSON list of {type, description}")

    va = subparsers.add_parser("validate", help="Vision continuity check between two frames")
    va.add_argument("--project", required=True, help="Exported project JSON")
    va.add_argument("--scene", required=True, help="Current scene id")
    va.add_argument("--current", required=True, help="Current frame (path, URL or data URL)")
    va.add_argument("--previous", required=True, help="Previous frame (path, URL or data URL)")
    _add_vision_args(va)
    _add_locale_arg(va)

    de = subparsers.add_parser("decide", help="Retry decision for a failed frame")
    de.add_argument("--failed", required=True, help="Failed frame (path, URL or data URL)")
    de.add_argument("--reference", required=True, help="Reference frame (path, URL or data URL)")
    de.add_argument("--prompt", required=True, help="Original generation prompt")
    de.add_argument("--errors", required=True, help="JSON list of {type, description}")
    _add_vision_args(de)

    rf = subparsers.add_parser("reference", help="Cascade reference frame for a scene")
    rf.add_argument("--project", required=True, help="Exported project JSON")
    rf.add_argument("--scene", required=True, help="Scene id")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(0)

    setup_logging()

    commands = {
        "raccord": run_raccord_cmd,
        "suggest": run_suggest_cmd,
        "classify": run_classify_cmd,
        "validate": run_validate_cmd,
        "decide": run_decide_cmd,
        "reference": run_reference_cmd,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
