"""
Marginalia - Main CLI Application

Command-line interface over a study session: parse references, suggest book
names, search the corpus, and move collections in and out.
"""
import asyncio
import json
from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from config import Config, get_config
from core.errors import MarginaliaError
from observability.logging import bind_context, shutdown_logging
from references.formatting import display, format_range
from search.engine import SearchMode
from search.highlight import segments
from session import StudySession

# Initialize app
app = typer.Typer(
    name="marginalia",
    help="Marginalia - Reference Resolution & Annotation Layer Engine",
    add_completion=False
)

console = Console()

CORPUS_OPTION = typer.Option(None, "--corpus", "-c", help="Translation JSON file (default: $MARGINALIA_CORPUS)")
STATE_OPTION = typer.Option(None, "--state", "-s", help="Session state file (default: $MARGINALIA_STATE)")


class OutputFormat(str, Enum):
    """Output format options."""
    TABLE = "table"
    JSON = "json"


@app.callback()
def _setup(ctx: typer.Context):
    """Marginalia - annotate, collect and search a Bible translation."""
    get_config().setup_logging()
    bind_context(command=ctx.invoked_subcommand)


def _fail(error: MarginaliaError) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(error.user_message())}")
    raise typer.Exit(1)


def _config(corpus: Optional[Path], state: Optional[Path]) -> Config:
    config = Config()
    if corpus is not None:
        config.corpus.corpus_path = corpus
    if state is not None:
        config.persistence.state_path = state
    # One-shot commands write once on exit; no reason to wait.
    config.persistence.save_debounce_seconds = 0.0
    return config


def _open(corpus: Optional[Path], state: Optional[Path] = None, load: bool = False) -> StudySession:
    session = StudySession.from_config(_config(corpus, state))
    if load:
        asyncio.run(session.load())
    return session


@app.command()
def parse(
    reference: str = typer.Argument(..., help="Reference text, e.g. 'john 3:16-18; Ps 23'"),
    corpus: Optional[Path] = CORPUS_OPTION,
    output: OutputFormat = typer.Option(OutputFormat.TABLE, "--output", "-o", help="Output format")
):
    """Resolve reference text to canonical ranges."""
    try:
        session = _open(corpus)
        ranges = session.parser.parse(reference)
    except MarginaliaError as e:
        _fail(e)
        return

    if output == OutputFormat.JSON:
        console.print_json(json.dumps([
            {"id": str(r), "display": format_range(r, session.corpus)} for r in ranges
        ]))
        return

    table = Table(title=f"Parsed: {escape(reference)}")
    table.add_column("Canonical", style="cyan")
    table.add_column("Display", style="green")
    table.add_column("Verses", justify="right")
    for r in ranges:
        verses = sum(1 for _ in session.corpus.iter_verses(r))
        table.add_row(str(r), format_range(r, session.corpus), str(verses))
    console.print(table)


@app.command()
def suggest(
    prefix: str = typer.Argument(..., help="Partial book name, e.g. '@Jo'"),
    limit: int = typer.Option(10, "--limit", "-l", help="Maximum suggestions"),
    corpus: Optional[Path] = CORPUS_OPTION
):
    """Suggest canonical book names for a typed prefix."""
    try:
        session = _open(corpus)
    except MarginaliaError as e:
        _fail(e)
        return

    names = session.corpus.suggest_books(prefix, limit=limit)
    if not names:
        console.print(f"[yellow]No book matches '{escape(prefix)}'[/yellow]")
        raise typer.Exit(1)
    for name in names:
        console.print(name, markup=False)


@app.command()
def search(
    query: str = typer.Argument(..., help="Text to find (matched literally)"),
    within: Optional[str] = typer.Option(None, "--within", "-w", help="Restrict to references, e.g. 'John 3'"),
    all_words: bool = typer.Option(False, "--all-words", "-a", help="Match every word anywhere in the verse"),
    case_sensitive: bool = typer.Option(False, "--case-sensitive", help="Match case exactly"),
    whole_word: bool = typer.Option(False, "--whole-word", help="Only match whole words"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Maximum results"),
    notes: bool = typer.Option(False, "--notes", "-n", help="Search note text instead of verse text"),
    corpus: Optional[Path] = CORPUS_OPTION,
    state: Optional[Path] = STATE_OPTION
):
    """Search verse text (or note text) and show highlighted matches."""
    mode = SearchMode.ALL_WORDS if all_words else SearchMode.LITERAL
    options = dict(mode=mode, case_sensitive=case_sensitive, whole_word=whole_word, limit=limit)
    try:
        session = _open(corpus, state, load=notes)
        if notes:
            rows = [
                (format_range(m.range, session.corpus), session.store.get(m.annotation_id).payload.text, m.spans)
                for m in session.search_notes(query, within, **options)
            ]
        else:
            rows = [
                (display(m.address), session.corpus.text(m.address), m.spans)
                for m in session.search(query, within, **options)
            ]
    except MarginaliaError as e:
        _fail(e)
        return

    table = Table(title=f"Matches for: {escape(query)}")
    table.add_column("Reference", style="cyan", no_wrap=True)
    table.add_column("Text")
    for reference, text, spans in rows:
        rendered = Text()
        for run, is_match in segments(text, spans):
            rendered.append(run, style="bold black on yellow" if is_match else None)
        table.add_row(reference, rendered)
    console.print(table)
    console.print(f"\n{len(rows)} match(es)")


@app.command("export-collection")
def export_collection(
    collection_id: str = typer.Argument(..., help="Collection id"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to file instead of stdout"),
    corpus: Optional[Path] = CORPUS_OPTION,
    state: Optional[Path] = STATE_OPTION
):
    """Export a collection in the versioned exchange format."""
    try:
        session = _open(corpus, state, load=True)
        serialized = session.collections.export_collection(collection_id)
    except MarginaliaError as e:
        _fail(e)
        return

    text = serialized.to_json()
    if output is None:
        console.print_json(text)
        return
    output.write_text(text + "\n", encoding="utf-8")
    console.print(f"[green]Exported {len(serialized.cards)} card(s) to {escape(str(output))}[/green]")


@app.command("import-collection")
def import_collection(
    input_file: Path = typer.Argument(..., help="Exported collection JSON file"),
    strict: bool = typer.Option(False, "--strict", help="Exit non-zero when any card is rejected"),
    corpus: Optional[Path] = CORPUS_OPTION,
    state: Optional[Path] = STATE_OPTION
):
    """Merge an exported collection into the session state."""
    if not input_file.exists():
        console.print(f"[red]Error: Input file not found: {escape(str(input_file))}[/red]")
        raise typer.Exit(1)

    try:
        session = _open(corpus, state, load=True)
        report = session.import_collection(input_file.read_text(encoding="utf-8"))
        asyncio.run(session.close())
    except MarginaliaError as e:
        _fail(e)
        return

    verb = "Created" if report.created else "Updated"
    console.print(f"[bold]{verb} collection {escape(report.collection_id)}[/bold]")

    table = Table(title="Import Report")
    table.add_column("Outcome", style="cyan")
    table.add_column("Cards", justify="right", style="green")
    table.add_row("Added", str(len(report.added)))
    table.add_row("Updated", str(len(report.updated)))
    table.add_row("Unchanged", str(len(report.unchanged)))
    table.add_row("Rejected", str(len(report.rejected)))
    console.print(table)

    for rejection in report.rejected:
        title = rejection.title or f"card {rejection.position + 1}"
        console.print(f"[red]Rejected {escape(title)}:[/red] {escape('; '.join(rejection.reasons))}")

    if strict and not report.ok:
        raise typer.Exit(2)


@app.command()
def status(
    corpus: Optional[Path] = CORPUS_OPTION,
    state: Optional[Path] = STATE_OPTION
):
    """Show configuration, corpus and session state."""
    console.print(Panel.fit(
        "[bold blue]Marginalia - Reference Resolution & Annotation Layer Engine[/bold blue]",
        border_style="blue"
    ))

    try:
        session = _open(corpus, state, load=True)
    except MarginaliaError as e:
        _fail(e)
        return

    config = session.config
    table = Table(title="Session Status")
    table.add_column("Component", style="cyan")
    table.add_column("Details")
    table.add_row("Translation", f"{session.corpus.translation} ({len(session.corpus.books)} books, {len(session.corpus)} verses)")
    table.add_row("State file", escape(str(config.persistence.state_path)))
    table.add_row("Overlap policy", config.annotations.overlap_policy.value)
    table.add_row("Layer deletion", config.annotations.layer_deletion_policy.value)
    table.add_row("Layers", str(len(session.store.layers())))
    table.add_row("Annotations", str(len(session.store)))
    table.add_row("Collections", str(len(session.collections)))
    console.print(table)


def main():
    """Main entry point."""
    try:
        app()
    finally:
        shutdown_logging()


if __name__ == "__main__":
    main()
