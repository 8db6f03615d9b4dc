"""CLI interface for coderag.

Typer-based command-line interface with Rich output formatting.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.syntax import Syntax
from rich.table import Table

from coderag import __version__
from coderag.actions import PatchService, Workspace, parse_code_changes
from coderag.cache import CacheService
from coderag.chunk import LineChunker
from coderag.diff import create_unified_diff
from coderag.embed import CachedEmbedder
from coderag.exceptions import CoderagError, InputError
from coderag.generate import RagOnlyGenerator
from coderag.indexing import Indexer
from coderag.project import ProjectManager
from coderag.rag import RagOrchestrator
from coderag.registry import default_registry
from coderag.templates import TemplateEngine
from coderag.types import QueryOutcome
from coderag.watch import DEFAULT_DEBOUNCE, FileWatcher

if TYPE_CHECKING:
    from coderag.actions import PatchReport
    from coderag.config import CoderagConfig
    from coderag.store import BaseStore

__all__ = ["app"]

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="coderag",
    help="Code-aware retrieval assistant with a unified diff engine.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
cache_app = typer.Typer(help="Manage the embedding cache.", no_args_is_help=True)
app.add_typer(cache_app, name="cache")

console = Console()

_STATUS_STYLES = {
    "created": "green",
    "modified": "green",
    "renamed": "cyan",
    "deleted": "yellow",
    "unchanged": "dim",
    "failed": "red",
}


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show info-level log output"),
    ] = False,
) -> None:
    """Code-aware retrieval assistant with a unified diff engine."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


# --- Component wiring ---


def _require_project() -> ProjectManager:
    root = ProjectManager.find_project_root()
    pm = ProjectManager(root) if root is not None else ProjectManager()
    if not pm.is_initialized:
        console.print(
            "[yellow]No coderag project found.[/yellow] Run [bold]coderag init[/bold] first."
        )
        raise typer.Exit(code=1)
    return pm


def _fail(message: str, error: Exception) -> typer.Exit:
    console.print(f"[red]{message}:[/red] {error}")
    return typer.Exit(code=1)


def _open_cache(pm: ProjectManager, config: CoderagConfig) -> CacheService:
    return CacheService(
        pm.cache_dir if config.cache.persistent else None,
        max_memory_entries=config.cache.max_memory_entries,
        default_ttl_ms=config.cache.ttl_seconds * 1000,
        sweep_interval_s=config.cache.sweep_interval_seconds,
    )


def _build_embedder(
    config: CoderagConfig, cache: CacheService, dimension: int | None = None
) -> CachedEmbedder:
    # Fallback vectors must match what the store already holds
    inner = default_registry.create("embedding", config.embedding.provider, config)
    return CachedEmbedder(
        inner,
        cache if config.cache.enabled else None,
        batch_size=config.embedding.batch_size,
        ttl_ms=config.cache.ttl_seconds * 1000,
        persistent=config.cache.persistent,
        random_fallback=config.embedding.random_fallback,
        fallback_dimension=dimension or config.embedding.dimension,
    )


def _open_store(pm: ProjectManager, config: CoderagConfig) -> BaseStore:
    store: BaseStore = default_registry.create(
        "store", config.store.backend, config, index_dir=pm.index_dir
    )
    return store


def _print_report(report: PatchReport) -> None:
    prefix = "[dim](dry run)[/dim] " if report.dry_run else ""
    for outcome in report.outcomes:
        style = _STATUS_STYLES.get(outcome.status, "bold")
        line = f"  {prefix}[{style}]{outcome.status}[/{style}] {outcome.path}"
        if outcome.error:
            line += f" [dim]({outcome.error})[/dim]"
        console.print(line)


# --- Commands ---


@app.command()
def version() -> None:
    """Show coderag version."""
    console.print(f"coderag {__version__}")


@app.command()
def init(
    name: Annotated[
        str,
        typer.Option("--name", "-n", help="Project name"),
    ] = "",
    embedding: Annotated[
        str,
        typer.Option("--embedding", "-e", help="Embedding provider (ollama, openai, chromadb)"),
    ] = "",
    llm: Annotated[
        str,
        typer.Option("--llm", "-l", help="Generation provider (ollama, openai, none)"),
    ] = "",
) -> None:
    """Initialize a new coderag project in the current directory."""
    pm = ProjectManager()
    try:
        project_dir = pm.init(name=name, embedding_provider=embedding, llm_provider=llm)
    except (CoderagError, OSError) as e:
        raise _fail("Failed to initialize project", e) from e

    console.print(f"[green]Initialized coderag project[/green] at {project_dir}")

    console.print("\nCreated:")
    console.print(f"  {pm.config_path}")
    console.print(f"  {pm.manifest_path}")

    console.print("\nNext steps:")
    console.print("  coderag index           Index the workspace")
    console.print("  coderag ask <question>  Ask about the code")


@app.command()
def status() -> None:
    """Show project status: indexed files, chunks, providers."""
    pm = _require_project()
    try:
        st = pm.status()
    except CoderagError as e:
        raise _fail("Failed to read project", e) from e

    console.print(f"[bold]coderag project:[/bold] {st.root.name}")

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("metric", style="dim")
    table.add_column("value", style="bold")
    table.add_row("Files", str(st.file_count))
    table.add_row("Chunks", str(st.chunk_count))
    table.add_row("Last indexed", st.last_indexed or "never")
    if st.config:
        table.add_row("Embedding", f"{st.config.embedding.provider} ({st.config.embedding.model})")
        table.add_row("LLM", f"{st.config.llm.provider} ({st.config.llm.model})")
        table.add_row("Store", st.config.store.backend)
    console.print(table)

    if st.file_count == 0:
        console.print("\n[dim]Nothing indexed yet. Run [bold]coderag index[/bold] to start.[/dim]")


@app.command()
def index(
    full: Annotated[
        bool,
        typer.Option("--full/--incremental", help="Rebuild from scratch or only changed files"),
    ] = False,
    watch: Annotated[
        bool,
        typer.Option("--watch", "-w", help="Keep re-indexing files as they change"),
    ] = False,
    debounce: Annotated[
        float,
        typer.Option("--debounce", help="Seconds of quiet before changed files are re-indexed"),
    ] = DEFAULT_DEBOUNCE,
) -> None:
    """Index the workspace into the vector store."""
    pm = _require_project()
    try:
        config = pm.load_config()
        manifest = pm.load_manifest()
        cache = _open_cache(pm, config)
        store = _open_store(pm, config)
        embedder = _build_embedder(config, cache, store.dimension)
    except CoderagError as e:
        raise _fail("Failed to initialize indexer", e) from e

    indexer = Indexer(
        root=pm.root,
        chunker=LineChunker(),
        embedder=embedder,
        store=store,
        config=config,
        manifest=manifest,
        manifest_path=pm.manifest_path,
    )

    with cache:
        try:
            with console.status("Indexing workspace..."):
                report = indexer.index_workspace(full=full)
        except CoderagError as e:
            store.close()
            raise _fail("Indexing failed", e) from e

        for rel_path, error in report.failures:
            console.print(f"  [red]Failed:[/red] {rel_path} ({error})")
        console.print(
            f"[green]Indexed {report.files_indexed} file(s)[/green] "
            f"({report.chunks} chunks, {report.files_skipped} skipped)"
        )
        if report.degraded:
            console.print(
                f"[yellow]{report.degraded} chunk(s) used random fallback vectors;[/yellow] "
                "re-index once the embedding provider is reachable."
            )

        if watch:
            watcher = FileWatcher(indexer, debounce=debounce)
            console.print(f"Watching [bold]{pm.root}[/bold] for changes. Press Ctrl+C to stop.")
            try:
                watcher.run()
            except KeyboardInterrupt:
                watcher.stop()
                console.print("\n[dim]Stopped watching.[/dim]")
        store.close()


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search query")],
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", help="Number of results"),
    ] = None,
    min_score: Annotated[
        float | None,
        typer.Option("--min-score", help="Minimum relevance score"),
    ] = None,
    path: Annotated[
        str | None,
        typer.Option("--path", help="Only search chunks of this workspace file"),
    ] = None,
) -> None:
    """Search indexed code without generating an answer."""
    pm = _require_project()
    try:
        config = pm.load_config()
        with _open_cache(pm, config) as cache:
            embedder = _build_embedder(config, cache)
            store = _open_store(pm, config)
            orchestrator = RagOrchestrator(
                embedder, store, RagOnlyGenerator(), config, TemplateEngine(pm.root)
            )
            results = orchestrator.retrieve(
                query,
                min_score=min_score,
                limit=top_k,
                filter={"metadata.file_path": path} if path else None,
            )
    except CoderagError as e:
        raise _fail("Search failed", e) from e

    if not results:
        console.print("[yellow]No relevant code found.[/yellow]")
        return

    for i, result in enumerate(results, start=1):
        meta = result.document.metadata
        console.print(
            f"[bold]{i}. {meta.file_path}[/bold] "
            f"[dim](lines {meta.start_line}-{meta.end_line}, score {result.score:.2f})[/dim]"
        )
        console.print(
            Syntax(
                result.document.text,
                meta.language or "text",
                line_numbers=True,
                start_line=meta.start_line or 1,
            )
        )


@app.command()
def ask(
    question: Annotated[str, typer.Argument(help="Question about the workspace code")],
    rag_only: Annotated[
        bool,
        typer.Option("--rag-only", help="Show retrieved code without calling a model"),
    ] = False,
) -> None:
    """Answer a question using retrieved workspace code."""
    pm = _require_project()
    try:
        config = pm.load_config()
        with _open_cache(pm, config) as cache:
            embedder = _build_embedder(config, cache)
            store = _open_store(pm, config)
            generator = default_registry.create("generation", config.llm.provider, config)
            orchestrator = RagOrchestrator(
                embedder, store, generator, config, TemplateEngine(pm.root)
            )
            with console.status("Thinking..."):
                result = orchestrator.query(question, force_rag_only=rag_only)
    except CoderagError as e:
        raise _fail("Query failed", e) from e

    if result.outcome is QueryOutcome.ERROR:
        console.print(f"[red]{result.content}[/red]")
        raise typer.Exit(code=1)
    console.print(Markdown(result.content))


@app.command()
def diff(
    original: Annotated[Path, typer.Argument(help="Original file")],
    new: Annotated[Path, typer.Argument(help="Modified file")],
) -> None:
    """Print a unified diff between two files."""
    try:
        old_text = Workspace(Path.cwd()).read_text(original)
        new_text = Workspace(Path.cwd()).read_text(new)
    except CoderagError as e:
        raise _fail("Cannot diff", e) from e
    console.print(
        Syntax(create_unified_diff(old_text, new_text, original.as_posix()), "diff"),
    )


@app.command()
def apply(
    patch: Annotated[Path, typer.Argument(help="Unified diff file to apply")],
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Report what would change without writing"),
    ] = False,
) -> None:
    """Apply a unified diff to the workspace."""
    workspace = Workspace(Path.cwd())
    try:
        diff_text = workspace.read_text(patch)
        report = PatchService(workspace).apply_patch(diff_text, dry_run=dry_run)
    except CoderagError as e:
        raise _fail("Patch failed", e) from e

    _print_report(report)
    if not report.ok:
        raise typer.Exit(code=1)


@app.command()
def extract(
    answer: Annotated[Path, typer.Argument(help="File holding a model answer")],
    apply_changes: Annotated[
        bool,
        typer.Option("--apply", help="Apply the extracted changes"),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="With --apply, report without writing"),
    ] = False,
) -> None:
    """List the code changes proposed in a model answer."""
    workspace = Workspace(Path.cwd())
    try:
        changes = parse_code_changes(workspace.read_text(answer))
    except CoderagError as e:
        raise _fail("Cannot read answer", e) from e

    if not changes:
        console.print("[yellow]No code changes found.[/yellow]")
        return

    table = Table(title=f"{len(changes)} change(s)")
    table.add_column("#", style="dim")
    table.add_column("File")
    table.add_column("Language")
    table.add_column("Kind")
    table.add_column("Description")
    for i, change in enumerate(changes, start=1):
        table.add_row(
            str(i),
            change.file_path or "[dim]unknown[/dim]",
            change.language or "-",
            "diff" if change.is_diff else "code",
            change.description or "",
        )
    console.print(table)

    if not apply_changes:
        return

    service = PatchService(workspace)
    failed = False
    for change in changes:
        try:
            report = service.apply_change(change, dry_run=dry_run)
        except InputError as e:
            console.print(f"  [yellow]Skipped:[/yellow] {e}")
            continue
        _print_report(report)
        failed = failed or not report.ok
    if failed:
        raise typer.Exit(code=1)


@cache_app.command("clear")
def cache_clear() -> None:
    """Delete every cached embedding."""
    pm = _require_project()
    try:
        config = pm.load_config()
    except CoderagError as e:
        raise _fail("Failed to read config", e) from e
    _open_cache(pm, config).clear()
    console.print("[green]Cache cleared.[/green]")

