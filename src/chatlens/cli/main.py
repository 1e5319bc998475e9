"""
Command Line Interface for chatlens.

Analyze chat transcripts with any supported AI provider, inspect the
available templates and providers, and re-run the content-recovery
pipeline on a saved raw model response.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from chatlens import __version__
from chatlens.ai import providers
from chatlens.ai.analyzer import ConversationAnalyzer
from chatlens.config import AppConfig, ConfigError, get_config, load_config
from chatlens.core.models import AnalysisOutcome, ProviderId
from chatlens.templates import TemplateStore
from chatlens.utils.logging import setup_logging

logger = logging.getLogger(__name__)

console = Console()

SDK_AVAILABILITY = {
    ProviderId.GOOGLE: lambda: providers.GENAI_AVAILABLE,
    ProviderId.OPENAI: lambda: providers.OPENAI_AVAILABLE,
    ProviderId.ANTHROPIC: lambda: providers.ANTHROPIC_AVAILABLE,
    ProviderId.GOOGLE_GENAI: lambda: providers.GOOGLE_GENAI_AVAILABLE,
    ProviderId.GOOGLE_VERTEX_AI: lambda: True,
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def print_success(text: str) -> None:
    """Print green success message."""
    console.print(f"[bold green]✓[/bold green] {text}")


def print_warning(text: str) -> None:
    """Print yellow warning message."""
    console.print(f"[bold yellow]⚠[/bold yellow] {text}")


def print_error(text: str) -> None:
    """Print red error message."""
    console.print(f"[bold red]✗[/bold red] {text}")


def _format_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    return json.dumps(content, ensure_ascii=False)


def print_analysis(outcome: AnalysisOutcome) -> None:
    """Print an analysis result as a summary panel, insight table and metrics."""
    data = outcome.data or {}

    console.print(
        Panel(
            escape(str(data.get("overallSummary", ""))),
            title=f"Summary ({data.get('detectedLanguage', '?')})",
            border_style="blue",
        )
    )

    insights = data.get("insights") or []
    if insights:
        table = Table(title="Insights")
        table.add_column("Type", style="cyan")
        table.add_column("Title", style="bold")
        table.add_column("Content")
        table.add_column("Priority", justify="right")
        for insight in insights:
            if not isinstance(insight, dict):
                continue
            metadata = insight.get("metadata") or {}
            table.add_row(
                escape(str(insight.get("type", ""))),
                escape(str(insight.get("title", ""))),
                escape(_format_content(insight.get("content"))),
                str(metadata.get("priority", "")) if isinstance(metadata, dict) else "",
            )
        console.print(table)

    metrics = data.get("metrics") or {}
    if metrics:
        table = Table(title="Metrics")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        for key, value in metrics.items():
            table.add_row(escape(str(key)), escape(_format_content(value)))
        console.print(table)

    if outcome.recovery and outcome.recovery != "direct":
        print_warning(f"Response needed recovery ({outcome.recovery})")
    if not outcome.validated:
        print_warning("Result did not pass strict validation; showing best-effort data")
    if outcome.analysis_id:
        print_success(f"Saved analysis {outcome.analysis_id}")


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


# =============================================================================
# MAIN CLI GROUP
# =============================================================================


@click.group()
@click.version_option(__version__, prog_name="chatlens")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug mode")
@click.option("--config", type=click.Path(dir_okay=False), help="Custom config file")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool, config: Optional[str]) -> None:
    """
    chatlens - AI analysis of chat conversations.

    Sends a conversation to the selected provider and turns its answer into
    a structured analysis, even when the model returns malformed JSON.
    """
    try:
        app_config = load_config(Path(config)) if config else get_config()
    except ConfigError as e:
        print_error(str(e))
        sys.exit(1)

    if debug or app_config.debug:
        level = logging.DEBUG
    elif verbose or app_config.verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    setup_logging(level=level)

    ctx.ensure_object(dict)
    ctx.obj["config"] = app_config
    ctx.obj["debug"] = debug


# =============================================================================
# ANALYZE COMMAND
# =============================================================================


@cli.command()
@click.argument("file", type=click.Path(dir_okay=False))
@click.option("--provider", "-p", required=True, help="Provider id (google, openai, anthropic, ...)")
@click.option("--model", "-m", required=True, help="Model id for the provider")
@click.option(
    "--template", "-t", "template_id", default="communication-analysis", show_default=True,
    help="Analysis template id",
)
@click.option("--api-key", envvar="CHATLENS_API_KEY", help="Provider API key (or CHATLENS_API_KEY)")
@click.option("--user", "user_id", help="User id; enables saving the analysis")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the result JSON here")
@click.option("--json", "output_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def analyze(
    ctx: click.Context,
    file: str,
    provider: str,
    model: str,
    template_id: str,
    api_key: Optional[str],
    user_id: Optional[str],
    output: Optional[str],
    output_json: bool,
) -> None:
    """
    Analyze a chat transcript.

    Example:
        chatlens analyze chat.txt -p openai -m gpt-4o-mini --api-key sk-...
    """
    config: AppConfig = ctx.obj["config"]
    analyzer = ConversationAnalyzer(config=config)

    outcome = analyzer.analyze_file(
        Path(file),
        provider=provider,
        model=model,
        api_key=api_key,
        template_id=template_id,
        user_id=user_id,
    )

    if not outcome.success:
        print_error(outcome.error or "Analysis failed")
        sys.exit(1)

    if output:
        _write_json(Path(output), outcome.data)

    if output_json:
        click.echo(json.dumps(outcome.model_dump(mode="json"), ensure_ascii=False, indent=2))
        return

    print_analysis(outcome)
    if output:
        print_success(f"Result written to {output}")


# =============================================================================
# TEMPLATES / PROVIDERS COMMANDS
# =============================================================================


@cli.command()
@click.option("--user", "user_id", help="Include this user's templates")
@click.pass_context
def templates(ctx: click.Context, user_id: Optional[str]) -> None:
    """List available analysis templates."""
    store = TemplateStore.from_config(ctx.obj["config"])

    table = Table(title="Analysis Templates")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Category")
    table.add_column("Built-in", justify="center")

    for template in store.list_templates(user_id):
        table.add_row(
            template.id, template.name, template.category, "✓" if template.is_built_in else ""
        )

    console.print(table)


@cli.command(name="providers")
def list_providers() -> None:
    """List supported providers and their known models."""
    table = Table(title="Providers")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Package")
    table.add_column("Installed", justify="center")
    table.add_column("Known models")

    for provider_id, info in providers.PROVIDER_CATALOG.items():
        installed = SDK_AVAILABILITY[provider_id]()
        table.add_row(
            provider_id.value,
            info.display_name,
            info.package,
            "[green]✓[/green]" if installed else "[red]✗[/red]",
            ", ".join(info.models),
        )

    console.print(table)


# =============================================================================
# REPAIR COMMAND
# =============================================================================


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the result JSON here")
@click.pass_context
def repair(ctx: click.Context, file: str, output: Optional[str]) -> None:
    """
    Run the content-recovery pipeline on a saved raw model response.

    Example:
        chatlens repair response.txt
    """
    raw_text = Path(file).read_text(encoding="utf-8", errors="replace")
    analyzer = ConversationAnalyzer(config=ctx.obj["config"])

    data, recovery, validated = analyzer.process_response(raw_text)
    payload = {"recovery": recovery, "validated": validated, "data": data}

    if output:
        _write_json(Path(output), payload)
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


def main() -> None:
    """Entry point for the console script."""
    cli()


if __name__ == "__main__":
    main()
