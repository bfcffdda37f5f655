"""
Command-line interface for the SEO Content Pipeline.

Post-processes a saved model response, or generates a fresh article and
post-processes it.
"""

import json
import logging
import random
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import PipelineConfig, ProviderConfig
from .json_recovery import InputContractError, ParseFailure
from .llm_client import ProviderError, create_provider
from .models import LinkTarget, PipelineResult, Reference, VocabularyTerm
from .pipeline import ContentPipeline

# Output goes to stdout; everything for the user goes to stderr
console = Console(stderr=True)

PRESETS = {
    "default": PipelineConfig,
    "conservative": PipelineConfig.conservative,
    "aggressive": PipelineConfig.aggressive,
}


class InputFileError(Exception):
    """Raised when a terms/links/references file cannot be loaded."""
    pass


def _load_list(path: Optional[Path], factory, label: str) -> list:
    """Load a JSON list of objects and build one item per entry."""
    if path is None:
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise InputFileError(f"Could not read {label} file {path}: {e}")
    if isinstance(data, dict):
        data = data.get(label) or data.get("items") or []
    if not isinstance(data, list):
        raise InputFileError(f"{label} file {path} must hold a JSON list")
    try:
        return [factory(item) for item in data if isinstance(item, dict)]
    except (KeyError, ValueError) as e:
        raise InputFileError(f"Invalid entry in {label} file {path}: {e}")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _build_pipeline(preset: str, seed: Optional[int]) -> ContentPipeline:
    rng = random.Random(seed) if seed is not None else None
    return ContentPipeline(config=PRESETS[preset](), rng=rng)


def _write_output(result: PipelineResult, output: Optional[Path], html_only: bool) -> None:
    record = result.record
    text = record.html_body if html_only else json.dumps(record.to_payload(), indent=2, ensure_ascii=False)
    if output is None:
        click.echo(text)
    else:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text, encoding="utf-8")


def _display_summary(result: PipelineResult, output: Optional[Path], verbose: bool) -> None:
    """Display pipeline summary."""
    record = result.record
    table = Table(title="Pipeline Summary", show_header=True)
    table.add_column("Stage", style="cyan")
    table.add_column("Result", style="green")

    table.add_row("Title", record.title or "-")
    table.add_row("Word count", str(record.word_count))
    table.add_row("Structure verified", "Yes" if record.structure_verified else "[yellow]No[/yellow]")

    if result.term_result:
        terms = result.term_result
        table.add_row(
            "Term coverage",
            f"{terms.before_score:.0f}% -> {terms.after_score:.0f}% "
            f"({terms.added_count} insertion(s))",
        )
    if result.link_result:
        links = result.link_result
        table.add_row("Internal links", f"{links.added_count} added")

    console.print(table)

    for label, outcome in (("Terms", result.term_result), ("Links", result.link_result)):
        shortfall = outcome.shortfall if outcome else None
        if shortfall:
            console.print(
                f"[yellow]{label} below target:[/yellow] "
                f"{shortfall.achieved:.0f} of {shortfall.targeted:.0f}"
            )
            if verbose and shortfall.failed:
                console.print(f"  [dim]Not placed: {', '.join(shortfall.failed[:10])}[/dim]")

    if verbose:
        for event in result.sections_log:
            console.print(f"  [dim]{event}[/dim]")
    if output is not None:
        console.print(f"\n[bold green]Success![/bold green] Output saved to: {output}")


_common_options = [
    click.option("--terms", "-t", type=click.Path(exists=True, path_type=Path),
                 help="JSON list of vocabulary terms."),
    click.option("--links", "-l", type=click.Path(exists=True, path_type=Path),
                 help="JSON list of internal link targets."),
    click.option("--references", "-r", type=click.Path(exists=True, path_type=Path),
                 help="JSON list of validated references."),
    click.option("--output", "-o", type=click.Path(path_type=Path),
                 help="Output path (default: stdout)."),
    click.option("--html-only", is_flag=True, default=False,
                 help="Write only the HTML body instead of the full JSON record."),
    click.option("--preset", type=click.Choice(sorted(PRESETS)), default="default",
                 help="Injection preset (default: default)."),
    click.option("--seed", type=int, default=None,
                 help="Random seed for reproducible term phrasing."),
    click.option("--verbose", "-v", is_flag=True, default=False,
                 help="Enable verbose output."),
]


def common_options(func):
    for option in reversed(_common_options):
        func = option(func)
    return func


@click.group()
@click.version_option(package_name="seo-content-pipeline")
def main() -> None:
    """
    SEO Content Pipeline - repair and enrich LLM article output.
    """


@main.command()
@click.argument("raw", type=click.Path(exists=True, path_type=Path))
@click.option("--keyword", "-k", type=str, default="",
              help="Primary keyword used to score link relevance (default: the title).")
@common_options
def process(
    raw: Path,
    keyword: str,
    terms: Optional[Path],
    links: Optional[Path],
    references: Optional[Path],
    output: Optional[Path],
    html_only: bool,
    preset: str,
    seed: Optional[int],
    verbose: bool,
) -> None:
    """
    Post-process a saved model response.

    Examples:

        seo-pipeline process response.txt --terms terms.json --links links.json -o article.json

        seo-pipeline process response.txt --html-only --seed 42 -o article.html
    """
    _setup_logging(verbose)
    try:
        term_list = _load_list(terms, VocabularyTerm.from_dict, "terms")
        target_list = _load_list(links, LinkTarget.from_dict, "links")
        reference_list = _load_list(references, Reference.from_dict, "references")

        pipeline = _build_pipeline(preset, seed)
        result = pipeline.process(
            raw.read_text(encoding="utf-8"),
            terms=term_list,
            targets=target_list,
            references=reference_list,
            keyword=keyword,
        )
    except InputFileError as e:
        console.print(f"[red]Input error:[/red] {e}")
        sys.exit(1)
    except InputContractError as e:
        console.print(f"[red]Invalid model output:[/red] {e}")
        sys.exit(2)
    except ParseFailure as e:
        console.print(f"[red]Could not recover model output:[/red] {e}")
        if verbose and e.preview:
            console.print(f"[dim]{e.preview}[/dim]")
        sys.exit(2)

    _write_output(result, output, html_only)
    _display_summary(result, output, verbose)


@main.command()
@click.argument("keyword", type=str)
@click.option("--api-key", type=str, envvar="ANTHROPIC_API_KEY",
              help="Anthropic API key. Can also be set via ANTHROPIC_API_KEY env var.")
@click.option("--model", type=str, default=None, help="Model name override.")
@common_options
def generate(
    keyword: str,
    api_key: Optional[str],
    model: Optional[str],
    terms: Optional[Path],
    links: Optional[Path],
    references: Optional[Path],
    output: Optional[Path],
    html_only: bool,
    preset: str,
    seed: Optional[int],
    verbose: bool,
) -> None:
    """
    Generate an article for KEYWORD, then post-process it.

    Example:

        seo-pipeline generate "protein timing" --terms terms.json -o article.json
    """
    _setup_logging(verbose)
    console.print(Panel.fit(
        "[bold blue]SEO Content Pipeline[/bold blue]\n"
        f"Generating article for: {keyword}",
        border_style="blue",
    ))

    try:
        term_list = _load_list(terms, VocabularyTerm.from_dict, "terms")
        target_list = _load_list(links, LinkTarget.from_dict, "links")
        reference_list = _load_list(references, Reference.from_dict, "references")

        provider_config = ProviderConfig(api_key=api_key)
        if model:
            provider_config.model = model
        pipeline = _build_pipeline(preset, seed)

        with console.status("[bold green]Generating article..."):
            result = pipeline.generate(
                create_provider(provider_config),
                keyword,
                terms=term_list,
                targets=target_list,
                references=reference_list,
            )
    except InputFileError as e:
        console.print(f"[red]Input error:[/red] {e}")
        sys.exit(1)
    except ProviderError as e:
        console.print(f"[red]LLM error:[/red] {e}")
        sys.exit(1)
    except ParseFailure as e:
        console.print(f"[red]Could not recover model output:[/red] {e}")
        sys.exit(2)

    _write_output(result, output, html_only)
    _display_summary(result, output, verbose)


if __name__ == "__main__":
    main()
