# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.cli",
#   "purpose": "Typer CLI driving harvest, resolution, compilation and publishing.",
#   "sections": [
#     {
#       "id": "clicontext",
#       "name": "CliContext",
#       "anchor": "class-clicontext",
#       "kind": "class"
#     },
#     {
#       "id": "main",
#       "name": "main",
#       "anchor": "function-main",
#       "kind": "function"
#     },
#     {
#       "id": "commands",
#       "name": "Commands",
#       "anchor": "CMDS",
#       "kind": "commands"
#     }
#   ]
# }
# === /NAVMAP ===

"""Command line entry point for the agent metadata pipeline.

Global options (``--config``, ``-v/-vv``) come before the subcommand::

    agentkg --config agentkg.yaml harvest hol --page-size 100 --max-pages 5
    agentkg dedup agentverse
    agentkg crossref agentverse hol
    agentkg compile hol --out build/hol.ttl
    agentkg publish hol --reset-context
    agentkg sync-agent hol uaid:aid:123
    agentkg checkpoint show holImportCursor:erc-8004

Fatal errors (configuration, credentials, storage, triple store) print a
message and exit with status 1. A harvest that stops early on a failing page
prints its processed/skipped summary and also exits 1.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from .errors import AgentsToKGError
from .logging_utils import setup_logging
from .settings import AgentsToKGSettings, load_config

_console = Console()


class CliContext:
    """Per-invocation state shared by every command.

    Settings are loaded on first access so ``--help`` never touches the
    environment or the filesystem.
    """

    def __init__(self, config: Optional[Path] = None, verbosity: int = 0) -> None:
        self.config = config
        self.verbosity = verbosity
        self.console = _console
        self._settings: Optional[AgentsToKGSettings] = None

    @property
    def settings(self) -> AgentsToKGSettings:
        if self._settings is None:
            self._settings = load_config(self.config)
            level = self._settings.logging.level
            if self.verbosity >= 2:
                level = "DEBUG"
            elif self.verbosity == 1 and level not in ("DEBUG",):
                level = "INFO"
            setup_logging(
                level=level,
                retention_days=self._settings.logging.retention_days,
                max_log_size_mb=self._settings.logging.max_log_size_mb,
                log_dir=self._settings.logging.log_dir,
            )
        return self._settings

    def log_info(self, message: str) -> None:
        """Print ``message`` when ``-v`` was given."""
        if self.verbosity >= 1:
            self.console.print(f"[cyan]INFO: {message}[/cyan]")


app = typer.Typer(
    name="agentkg",
    help="Harvest AI agent registries and publish them as a knowledge graph",
    no_args_is_help=True,
)
checkpoint_app = typer.Typer(help="Inspect or reset stored checkpoints", no_args_is_help=True)
app.add_typer(checkpoint_app, name="checkpoint")

_context: Optional[CliContext] = None


def get_context() -> CliContext:
    """Return the context created by :func:`main`."""
    if _context is None:
        raise RuntimeError("CLI context not initialized")
    return _context


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="AGENTKG_CONFIG",
        help="Path to a YAML config file",
    ),
    verbosity: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    ),
) -> None:
    """Agent registry harvesting and knowledge graph publishing."""
    global _context
    _context = CliContext(config=config, verbosity=verbosity)


def _fail(ctx: CliContext, exc: Exception) -> None:
    ctx.console.print(f"[red]✗ {type(exc).__name__}: {exc}[/red]")
    raise typer.Exit(1)


@contextmanager
def _session(ctx: CliContext) -> Iterator:
    """Open the configured store (schema ensured) and map fatal errors to exit 1."""
    from .network.client import close_http_client
    from .storage import ensure_schema, open_store

    try:
        settings = ctx.settings
        with open_store(settings.storage) as store:
            ensure_schema(store)
            yield settings, store
    except (AgentsToKGError, ValueError) as exc:
        _fail(ctx, exc)
    finally:
        close_http_client()


def _graph_client(settings: AgentsToKGSettings):
    from .GraphPublish import GraphStoreClient

    return GraphStoreClient.from_settings(settings.graph)


def _summary(title: str, rows: List[tuple]) -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for name, value in rows:
        table.add_row(name, str(value))
    return table


# ============================================================================
# CLI COMMANDS (CMDS)
# ============================================================================


@app.command()
def harvest(
    registry: str = typer.Argument(..., help="Registry to harvest (agentverse, hol, nanda)"),
    page_size: Optional[int] = typer.Option(None, "--page-size", min=1, help="Items per page"),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", min=1, help="Stop after N pages per stream"),
    resume: bool = typer.Option(True, "--resume/--no-resume", help="Continue from stored checkpoints"),
    reset: bool = typer.Option(False, "--reset", help="Reset checkpoints to page 1 before starting"),
    sub_registry: Optional[List[str]] = typer.Option(
        None, "--sub-registry", help="HOL sub-registry to walk (repeatable)"
    ),
) -> None:
    """Fetch registry pages and upsert agent records into the store."""
    from .RegistryHarvest import harvest as run_harvest

    ctx = get_context()
    with _session(ctx) as (settings, store):
        result = run_harvest(
            registry,
            settings,
            store,
            page_size=page_size,
            max_pages=max_pages,
            resume=resume,
            reset=reset,
            streams=sub_registry or None,
        )
        rows = [("processed", result.processed), ("skipped", result.skipped), ("pages", result.pages)]
        rows.extend((f"stream {name}", count) for name, count in sorted(result.streams.items()))
        ctx.console.print(_summary(f"harvest {registry}", rows))
        if result.stopped_early:
            ctx.console.print("[yellow]Stopped early on a failing page; rerun to resume.[/yellow]")
            raise typer.Exit(1)


@app.command()
def dedup(registry: str = typer.Argument(..., help="Registry to deduplicate")) -> None:
    """Mark same-name records of one registry as duplicates of a canonical record."""
    from .EntityResolution import deduplicate_within_registry

    ctx = get_context()
    with _session(ctx) as (_settings, store):
        result = deduplicate_within_registry(store, registry)
        ctx.console.print(
            _summary(
                f"dedup {registry}",
                [("records", result.records), ("groups", result.groups), ("duplicates", result.duplicates)],
            )
        )


@app.command()
def crossref(
    registry_a: str = typer.Argument(..., help="Registry whose records are annotated"),
    registry_b: str = typer.Argument(..., help="Registry to link against"),
    other_store: Optional[Path] = typer.Option(
        None, "--other-store", help="SQLite file holding registry B (defaults to the configured store)"
    ),
) -> None:
    """Link records of REGISTRY_A and REGISTRY_B by external id, then by name."""
    from .EntityResolution import cross_reference
    from .storage import SQLiteStore, ensure_schema

    ctx = get_context()
    with _session(ctx) as (settings, store_a):
        if other_store is None:
            result = cross_reference(store_a, registry_a, store_a, registry_b)
        else:
            with SQLiteStore(other_store, max_batch_statements=settings.storage.max_batch_statements) as store_b:
                ensure_schema(store_b)
                result = cross_reference(store_a, registry_a, store_b, registry_b)
        ctx.console.print(
            _summary(
                f"crossref {registry_a} <-> {registry_b}",
                [
                    ("linked by id", result.linked_by_id),
                    ("linked by name", result.linked_by_name),
                    ("skipped conflicts", result.skipped_conflicts),
                ],
            )
        )


@app.command("compile")
def compile_cmd(
    registry: str = typer.Argument(..., help="Registry to compile"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Output Turtle file"),
    resume: bool = typer.Option(False, "--resume", help="Continue after the stored watermark"),
) -> None:
    """Compile stored agents of REGISTRY into a Turtle file."""
    from .GraphCompile import compile_all

    ctx = get_context()
    with _session(ctx) as (_settings, store):
        result = compile_all(store, registry, out_path=out, resume=resume)
        rows = [("agents", result.agent_count), ("triples", result.triple_count)]
        if result.resumed_from:
            rows.append(("resumed after", result.resumed_from))
        rows.extend(("output", str(path)) for path in result.outputs)
        ctx.console.print(_summary(f"compile {registry}", rows))


@app.command()
def publish(
    registry: str = typer.Argument(..., help="Registry to compile and publish"),
    context: Optional[str] = typer.Option(None, "--context", help="Named graph IRI"),
    reset_context: bool = typer.Option(False, "--reset-context", help="Clear the named graph first"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Intermediate Turtle file"),
) -> None:
    """Compile REGISTRY and upload the result to the triple store."""
    from .pipeline import publish_registry

    ctx = get_context()
    with _session(ctx) as (settings, store):
        client = _graph_client(settings)
        ctx.log_info(f"publishing to {client.repository} at {client.base_url}")
        client.ensure_repository()
        result = publish_registry(
            settings, store, registry, client, context=context, reset_context=reset_context, out_path=out
        )
        ctx.console.print(
            _summary(
                f"publish {registry}",
                [
                    ("agents", result.agent_count),
                    ("triples", result.publish.triple_count),
                    ("bytes", result.publish.bytes_written),
                    ("context", context or settings.graph.context),
                ],
            )
        )


@app.command("sync-agent")
def sync_agent(
    registry: str = typer.Argument(..., help="Registry of the agent"),
    external_id: str = typer.Argument(..., help="Registry-native agent id"),
    context: Optional[str] = typer.Option(None, "--context", help="Named graph IRI"),
) -> None:
    """Recompile one agent and publish it without clearing the graph."""
    from .pipeline import sync_single_agent

    ctx = get_context()
    with _session(ctx) as (settings, store):
        result = sync_single_agent(settings, store, registry, external_id, _graph_client(settings), context=context)
        ctx.console.print(
            _summary(
                f"sync {registry}/{external_id}",
                [("triples", result.triple_count), ("bytes", result.bytes_written)],
            )
        )


@checkpoint_app.command("show")
def checkpoint_show(key: str = typer.Argument(..., help="Checkpoint key, e.g. agentverse or compile:hol")) -> None:
    """Print the stored checkpoint for KEY."""
    from .storage import CheckpointStore

    ctx = get_context()
    with _session(ctx) as (_settings, store):
        value = CheckpointStore(store).get(key)
        if value is None:
            ctx.console.print(f"[yellow]No checkpoint stored for {key}[/yellow]")
            return
        typer.echo(json.dumps(value, indent=2, sort_keys=True))


@checkpoint_app.command("reset")
def checkpoint_reset(key: str = typer.Argument(..., help="Checkpoint key to reset")) -> None:
    """Rewind KEY to page 1."""
    from .storage import CheckpointStore

    ctx = get_context()
    with _session(ctx) as (_settings, store):
        cursor = CheckpointStore(store).reset(key)
        ctx.console.print(f"[green]✓ {key} reset to page {cursor.page}[/green]")


__all__ = ["app", "main", "CliContext", "get_context"]
