"""usedby CLI - cross-reference symbols and keep @usedby doc blocks current."""
import json
from contextlib import nullcontext
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import typer
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from usedby.analyzer.cache import SymbolCache
from usedby.analyzer.discovery import SourceFile, discover_files, iter_batches, read_files, read_source
from usedby.analyzer.errors import FileReadError, FileWriteError, InputNotFoundError, ScanResultFormatError
from usedby.analyzer.graph_builder import GraphOptions, RelationshipGraph
from usedby.analyzer.models import ScanOptions, ScanResult, Symbol, load_scan_result
from usedby.analyzer.scanner import create_default_scanner
from usedby.annotator.annotator import AnnotationOptions, Annotator
from usedby.annotator.cleaner import remove_usage_annotations
from usedby.annotator.comment_style import get_comment_style
from usedby.annotator.writer import write_if_changed
from usedby.config import __version__, get_config
from usedby.utils.logger import configure_logging
from usedby.utils.safe_console import SafeConsole

app = typer.Typer(
    name="usedby",
    help="Cross-reference symbol usages and maintain @usedby doc blocks",
    add_completion=False
)
console = SafeConsole()
# Warnings that must not mix with diagram text written to stdout
err_console = SafeConsole(stderr=True)

# Cache management sub-command
cache_app = typer.Typer(name="cache", help="Manage the usedby definition cache")

DIRECTIONS = ("TD", "LR", "RL", "BT")


def _resolve_existing(path: str, what: str = "Project path") -> Path:
    """Resolve a path or exit with status 1 if it does not exist."""
    resolved = Path(path).resolve()
    if not resolved.exists():
        console.print(f"[bold red]Error:[/bold red] {what} does not exist: {escape(str(resolved))}")
        raise typer.Exit(1)
    return resolved


def _patterns(values: Optional[List[str]], default: List[str]) -> List[str]:
    """Flatten repeated and comma-separated pattern options."""
    if not values:
        return list(default)
    return [item.strip() for value in values for item in value.split(",") if item.strip()]


def _progress(show: bool):
    if not show:
        return nullcontext()
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True
    )


def _display_path(path: str, project_root: Path) -> str:
    try:
        return Path(path).relative_to(project_root).as_posix()
    except ValueError:
        return path


def run_scan(project_path: Path, include: List[str], exclude: List[str], depth: str,
             use_cache: bool = True, max_files: int = 1000, show_progress: bool = True) -> ScanResult:
    """Discover, read and cross-reference the files of a project.

    Files are read concurrently in batches; the two-pass scan then runs once
    over the whole set so every usage is resolved against every file.

    Args:
        project_path: Directory (or single file) to scan
        include: Glob patterns of files to scan
        exclude: Glob patterns of files to skip
        depth: 'basic' (definitions only) or 'deep' (definitions and usages)
        use_cache: Reuse cached definitions for unchanged files
        max_files: Upper bound on the number of files scanned
        show_progress: Render a progress bar

    Returns:
        ScanResult with paths relative to the project root
    """
    config = get_config()
    root = project_path if project_path.is_dir() else project_path.parent
    files = discover_files(project_path, include, exclude, max_files)

    cache = SymbolCache(root, config.cache_dir) if use_cache else None
    scanner = create_default_scanner(cache)
    sources: List[SourceFile] = []

    try:
        with _progress(show_progress) as progress:
            if show_progress:
                task = progress.add_task("[cyan]Reading files...", total=len(files))

            for batch in iter_batches(files, config.batch_size):
                read, _ = read_files(batch)
                for source in read:
                    sources.append(SourceFile(path=_display_path(source.path, root), content=source.content))
                if show_progress:
                    progress.advance(task, len(batch))

            if show_progress:
                progress.update(task, description="[yellow]Cross-referencing symbols...", total=None)
            options = ScanOptions(
                include_patterns=include,
                exclude_patterns=exclude,
                scan_depth=depth,
                max_files_to_scan=max_files,
                cache_results=use_cache,
            )
            return scanner.process_batch(sources, options)
    finally:
        if cache is not None:
            cache.close()


def _print_scan_summary(result: ScanResult):
    table = Table(title="Scan Summary", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    table.add_row("Files Scanned", str(result.files_scanned))
    table.add_row("Symbols Found", str(result.symbols_found))
    table.add_row("Usages Found", str(result.usages_found))
    table.add_row("Scan Time", f"{result.scan_time} ms")
    console.print(table)


def _load_input(input_path: str) -> ScanResult:
    path = _resolve_existing(input_path, "Input file")
    try:
        return load_scan_result(path)
    except (InputNotFoundError, ScanResultFormatError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


def _group_by_file(symbols: List[Symbol]) -> Dict[str, List[Symbol]]:
    by_file: Dict[str, List[Symbol]] = {}
    for symbol in symbols:
        by_file.setdefault(symbol.file_path, []).append(symbol)
    return by_file


@app.command()
def scan(
    project_path: str = typer.Argument(".", help="Project root path to scan"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Write scan results to this JSON file"),
    include: Optional[List[str]] = typer.Option(None, "--include", "-i", help="File patterns to include"),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", "-e", help="File patterns to exclude"),
    depth: Optional[str] = typer.Option(None, "--depth", "-d", help="Scan depth (basic or deep)"),
    no_cache: bool = typer.Option(False, "--no-cache", "-n", help="Disable the definition cache"),
    max_files: Optional[int] = typer.Option(None, "--max-files", "-m", help="Maximum number of files to scan"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Scan a project for symbols and their usages."""
    configure_logging(verbose)
    config = get_config()
    project_path = _resolve_existing(project_path)

    depth = (depth or config.scan_depth).lower()
    if depth not in ("basic", "deep"):
        console.print(f"[bold red]Error:[/bold red] Unknown scan depth: {escape(depth)}")
        raise typer.Exit(1)

    console.print(f"[bold blue]Scanning project:[/bold blue] {escape(str(project_path))}\n")
    result = run_scan(
        project_path,
        _patterns(include, config.include_patterns),
        _patterns(exclude, config.exclude_patterns),
        depth,
        use_cache=not no_cache,
        max_files=max_files or config.max_files,
    )
    _print_scan_summary(result)

    if output:
        output_path = Path(output).resolve()
        result.save(output_path)
        console.print(f"[green]✓ Scan results saved to {escape(str(output_path))}[/green]")


@app.command()
def annotate(
    project_path: str = typer.Argument(".", help="Project root path to annotate"),
    input_path: Optional[str] = typer.Option(None, "--input", "-i", help="Scan results JSON (skips scanning)"),
    include: Optional[List[str]] = typer.Option(None, "--include", help="File patterns to include"),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", help="File patterns to exclude"),
    mermaid: bool = typer.Option(False, "--mermaid", help="Embed a Mermaid usage diagram in each block"),
    diagram_type: Optional[str] = typer.Option(None, "--diagram-type", help="Diagram flavour (flowchart or graph)"),
    force: bool = typer.Option(False, "--force", "-f", help="Update files without confirmation"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="List every updated file"),
):
    """Add or refresh @usedby doc blocks above symbol definitions."""
    configure_logging(verbose)
    config = get_config()
    project_path = _resolve_existing(project_path)
    root = project_path if project_path.is_dir() else project_path.parent

    diagram_type = (diagram_type or config.diagram_type).lower()
    if diagram_type not in ("flowchart", "graph"):
        console.print(f"[bold red]Error:[/bold red] Unknown diagram type: {escape(diagram_type)}")
        raise typer.Exit(1)

    if input_path:
        result = _load_input(input_path)
    else:
        result = run_scan(
            project_path,
            _patterns(include, config.include_patterns),
            _patterns(exclude, config.exclude_patterns),
            "deep",
            max_files=config.max_files,
        )

    annotator = Annotator(AnnotationOptions(include_mermaid=mermaid, mermaid_diagram_type=diagram_type))
    targets = {
        file_path: symbols
        for file_path, symbols in _group_by_file(result.symbols).items()
        if any(annotator.generate_usage_annotations(symbol) for symbol in symbols)
    }
    if not targets:
        console.print("[bold green]No cross-file usages to annotate.[/bold green]")
        return

    console.print(f"[bold yellow]{len(targets)} file(s) contain symbols with usages.[/bold yellow]")
    if not force:
        confirm = typer.confirm("Update doc blocks in place?", default=False)
        if not confirm:
            console.print("[red]Aborted[/red]")
            return

    updated, unchanged, failed = _annotate_files(annotator, root, targets, verbose)

    console.print(f"\n[bold green]✓ Updated {updated} file(s)[/bold green] "
                  f"[dim]({unchanged} already current)[/dim]")
    if failed:
        console.print(f"[bold red]{failed} file(s) could not be updated[/bold red]")
        raise typer.Exit(1)


def _annotate_files(annotator: Annotator, root: Path, targets: Dict[str, List[Symbol]],
                    verbose: bool) -> Tuple[int, int, int]:
    updated = unchanged = failed = 0
    for file_path, symbols in sorted(targets.items()):
        path = root / file_path
        try:
            content = read_source(path).content
            new_content = annotator.annotate_content(content, symbols, get_comment_style(path.suffix))
            if write_if_changed(path, new_content):
                updated += 1
                if verbose:
                    console.print(f"  [cyan]updated[/cyan] {escape(file_path)}")
            else:
                unchanged += 1
        except FileReadError as e:
            console.print(f"[yellow]Skipped {escape(file_path)}: {escape(e.reason)}[/yellow]")
            failed += 1
        except FileWriteError as e:
            console.print(f"[red]Failed to update {escape(file_path)}: {escape(e.reason)}[/red]")
            failed += 1
    return updated, unchanged, failed


@app.command()
def clean(
    project_path: str = typer.Argument(".", help="Project root path to clean"),
    include: Optional[List[str]] = typer.Option(None, "--include", help="File patterns to include"),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", help="File patterns to exclude"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="List every cleaned file"),
):
    """Remove @usedby annotations and usage diagrams from doc blocks."""
    configure_logging(verbose)
    config = get_config()
    project_path = _resolve_existing(project_path)

    files = discover_files(
        project_path,
        _patterns(include, config.include_patterns),
        _patterns(exclude, config.exclude_patterns),
        config.max_files,
    )

    cleaned = removed_total = failed = 0
    for batch in iter_batches(files, config.batch_size):
        sources, errors = read_files(batch)
        failed += len(errors)
        for source in sources:
            new_content, removed = remove_usage_annotations(source.content, get_comment_style(source.path))
            if not removed:
                continue
            try:
                write_if_changed(Path(source.path), new_content)
            except FileWriteError as e:
                console.print(f"[red]Failed to clean {escape(source.path)}: {escape(e.reason)}[/red]")
                failed += 1
                continue
            cleaned += 1
            removed_total += removed
            if verbose:
                console.print(f"  [cyan]cleaned[/cyan] {escape(_display_path(source.path, project_path))} "
                              f"[dim]({removed} annotation(s))[/dim]")

    console.print(f"[bold green]✓ Removed {removed_total} annotation(s) from {cleaned} file(s)[/bold green]")
    if failed:
        console.print(f"[bold red]{failed} file(s) could not be processed[/bold red]")
        raise typer.Exit(1)


@app.command()
def visualize(
    input_path: str = typer.Option(..., "--input", "-i", help="Scan results JSON"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Write the visualization to this file"),
    output_format: str = typer.Option("mermaid", "--format", "-f", help="Output format (mermaid or json)"),
    direction: str = typer.Option("TD", "--direction", "-d", help="Graph direction (TD, LR, RL, BT)"),
    symbol_name: Optional[str] = typer.Option(None, "--symbol", "-s", help="Focus on a single symbol"),
    max_nodes: int = typer.Option(50, "--max-nodes", "-m", help="Maximum number of nodes"),
    include_files: bool = typer.Option(True, "--include-files/--no-include-files", help="Add file nodes"),
    target_types: Optional[List[str]] = typer.Option(None, "--target-types", help="Only these symbol kinds"),
    no_edge_labels: bool = typer.Option(False, "--no-edge-labels", help="Hide edge labels"),
):
    """Render symbol relationships as a Mermaid diagram or JSON graph."""
    configure_logging()
    direction = direction.upper()
    if direction not in DIRECTIONS:
        console.print(f"[bold red]Error:[/bold red] Unknown direction: {escape(direction)}")
        raise typer.Exit(1)
    if output_format not in ("mermaid", "json"):
        console.print(f"[bold red]Error:[/bold red] Unknown format: {escape(output_format)}")
        raise typer.Exit(1)

    symbols = _load_input(input_path).symbols
    kinds = _patterns(target_types, [])
    if kinds:
        symbols = [symbol for symbol in symbols if symbol.kind in kinds]
    if not symbols:
        console.print("[yellow]No symbols found for visualization.[/yellow]")
        return

    graph = RelationshipGraph(GraphOptions(
        include_files=include_files,
        max_nodes=max_nodes,
        direction=direction,
        edge_labels=not no_edge_labels,
    ))
    if symbol_name:
        matches = [symbol for symbol in symbols if symbol.name == symbol_name]
        if not matches:
            similar = sorted({s.name for s in symbols if symbol_name.lower() in s.name.lower()})[:10]
            console.print(f"[bold red]Error:[/bold red] Symbol not found: {escape(symbol_name)}")
            if similar:
                console.print(f"[dim]Did you mean: {escape(', '.join(similar))}[/dim]")
            raise typer.Exit(1)
        for match in matches:
            graph.build_symbol_graph(match)
    else:
        graph.build_graph(symbols)
        if graph.graph.number_of_nodes() >= max_nodes:
            err_console.print(f"[yellow]Graph limited to {max_nodes} nodes. Use --max-nodes to raise the limit.[/yellow]")

    if output_format == "json":
        rendered = json.dumps(graph.to_dict(), indent=2)
    else:
        rendered = graph.generate_mermaid_diagram()

    if output:
        output_path = Path(output).resolve()
        output_path.write_text(rendered + "\n", encoding="utf-8")
        console.print(f"[green]✓ Visualization saved to {escape(str(output_path))}[/green]")
    else:
        typer.echo(rendered)


# =========================================================================
# CACHE MANAGEMENT COMMANDS
# =========================================================================

@cache_app.command("clear")
def cache_clear(
    project_path: str = typer.Argument(".", help="Project root path"),
):
    """Clear the definition cache for a project.

    The next scan re-extracts every file.
    """
    project_path = _resolve_existing(project_path)

    with SymbolCache(project_path, get_config().cache_dir) as cache:
        cache.clear_cache()

    console.print(f"[green]✓ Cache cleared for {escape(str(project_path))}[/green]")


@cache_app.command("stats")
def cache_stats(
    project_path: str = typer.Argument(".", help="Project root path"),
):
    """Display cache statistics for a project."""
    project_path = _resolve_existing(project_path)

    with SymbolCache(project_path, get_config().cache_dir) as cache:
        stats = cache.get_cache_stats()

    table = Table(title=f"Cache Statistics: {project_path}", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")

    table.add_row("Total Files Cached", str(stats['total_files']))
    table.add_row("Symbol Definitions", str(stats['symbols_cached']))

    console.print(table)


# Register cache sub-command
app.add_typer(cache_app)


def _version_callback(value: bool):
    if value:
        typer.echo(f"usedby {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True,
                                 help="Show the version and exit"),
):
    """usedby - cross-reference symbol usages and maintain @usedby doc blocks."""


if __name__ == "__main__":
    app()
