"""Moderyo CLI — moderate text from the command line."""

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from moderyo.client import ModeryoClient
from moderyo.config import ModeryoConfig, load_config
from moderyo.exceptions import ModeryoError
from moderyo.models import (
    EnforcementMode,
    ModerationOptions,
    ModerationRequest,
    ModerationResult,
    OfflineMode,
    RiskProfile,
)
from moderyo.version import __version__

console = Console()

_DECISION_STYLE = {"ALLOW": "green", "FLAG": "yellow", "WARN": "yellow", "BLOCK": "red"}


def _build_client(ctx: click.Context) -> ModeryoClient:
    obj = ctx.obj
    overrides = {k: v for k, v in obj["overrides"].items() if v is not None}
    if obj["config_path"]:
        config = load_config(obj["config_path"], **overrides)
    else:
        config = ModeryoConfig.from_env(**overrides)
    return ModeryoClient(config, transport=obj.get("transport"), sleep=obj.get("sleep", asyncio.sleep))


def _fail(ctx: click.Context, error: ModeryoError) -> None:
    console.print(f"[red]Error [{error.code}]:[/] {escape(error.message)}")
    ctx.exit(2)


def _decision_text(result: ModerationResult) -> str:
    decision = result.action.value
    return f"[{_DECISION_STYLE.get(decision, 'white')}]{decision}[/]"


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="YAML config file")
@click.option("--api-key", envvar="MODERYO_API_KEY", default=None, help="API key")
@click.option("--base-url", default=None, help="Service base URL")
@click.option("--offline-mode", type=click.Choice([m.value for m in OfflineMode]), default=None,
              help="Behaviour when the service is unreachable")
@click.option("--verbose", "-v", is_flag=True, help="Log requests and retries")
@click.pass_context
def main(
    ctx: click.Context,
    config_path: str | None,
    api_key: str | None,
    base_url: str | None,
    offline_mode: str | None,
    verbose: bool,
) -> None:
    """Moderyo — content moderation from the command line."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["overrides"] = {
        "api_key": api_key,
        "base_url": base_url,
        "offline_mode": offline_mode,
    }


# ── Moderate ─────────────────────────────────────────────────────────


@main.command()
@click.argument("text")
@click.option("--mode", type=click.Choice([m.value for m in EnforcementMode]), default=None)
@click.option("--risk", type=click.Choice([r.value for r in RiskProfile]), default=None)
@click.option("--debug", is_flag=True, help="Ask the server for debug details")
@click.option("--player-id", default=None, help="Subject identifier")
@click.option("--model", default=None, help="Model to moderate with")
@click.option("--long-text", is_flag=True, help="Request sentence-level analysis")
@click.pass_context
def moderate(
    ctx: click.Context,
    text: str,
    mode: str | None,
    risk: str | None,
    debug: bool,
    player_id: str | None,
    model: str | None,
    long_text: bool,
) -> None:
    """Moderate TEXT and show the verdict.

    Exits with status 1 when the text is blocked.
    """
    options = ModerationOptions(
        mode=EnforcementMode(mode) if mode else None,
        risk=RiskProfile(risk) if risk else None,
        debug=True if debug else None,
        player_id=player_id,
    )
    request = ModerationRequest(input=text, model=model, long_text_mode=True if long_text else None)

    try:
        client = _build_client(ctx)
        result = asyncio.run(client.moderate(request, options))
    except ModeryoError as e:
        _fail(ctx, e)
        return

    table = Table(title=f"Moderation {result.id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Decision", _decision_text(result))
    table.add_row("Reason", escape(result.explanation) or "-")
    table.add_row("Flagged", str(result.is_flagged()))
    table.add_row("Mode", result.mode.value)
    table.add_row("Model", result.model)
    triggered = ", ".join(k.value for k in result.triggered_categories())
    table.add_row("Categories", triggered or "-")
    for key, score in sorted(result.category_scores.above(0.1).items(), key=lambda kv: -kv[1])[:5]:
        table.add_row(f"  {key.value}", f"{score:.3f}")
    console.print(table)

    if result.is_blocked():
        ctx.exit(1)


# ── Batch ────────────────────────────────────────────────────────────


@main.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def batch(ctx: click.Context, input_file: str) -> None:
    """Moderate each non-empty line of INPUT_FILE, one at a time."""
    lines = [line for line in Path(input_file).read_text(encoding="utf-8").splitlines() if line.strip()]

    try:
        client = _build_client(ctx)
        results = asyncio.run(client.moderate_batch(lines))
    except ModeryoError as e:
        _fail(ctx, e)
        return

    table = Table(title=f"Batch ({results.total} items)")
    table.add_column("#", style="dim", width=4)
    table.add_column("Decision")
    table.add_column("Text")
    table.add_column("Reason")
    for i, (line, result) in enumerate(zip(lines, results)):
        table.add_row(str(i + 1), _decision_text(result), escape(line[:40]), escape(result.explanation[:50]))
    console.print(table)
    console.print(
        f"Blocked: [red]{results.blocked_count}[/]  Flagged: [yellow]{results.flagged_count}[/]"
    )

    if results.has_blocked():
        ctx.exit(1)


# ── Health ───────────────────────────────────────────────────────────


@main.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check whether the moderation service is reachable."""
    try:
        client = _build_client(ctx)
    except ModeryoError as e:
        _fail(ctx, e)
        return

    if asyncio.run(client.health_check()):
        console.print("[green]healthy[/]")
    else:
        console.print("[red]unhealthy[/]")
        ctx.exit(1)


if __name__ == "__main__":
    main()
