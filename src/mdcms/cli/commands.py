"""CLI command implementations"""

import asyncio
import logging
from typing import Annotated, Any, Awaitable, Callable, Optional, TypeVar

import typer

from mdcms.config import Settings, load_config
from mdcms.core.models import MoveResult
from mdcms.crud.database import require_db
from mdcms.errors import AppError
from mdcms.services import categories as category_service
from mdcms.services.context import AppContext, build_context
from mdcms.services.newsletter import send_queued

T = TypeVar("T")


def _fail(msg: str, cause: Exception = None) -> None:
    """Print a user-friendly error to stderr and exit 1."""
    typer.echo(f"Error: {msg}", err=True)
    if cause:
        typer.echo(f"  {cause}", err=True)
    raise typer.Exit(1)


def _settings(overrides: dict = None) -> Settings:
    """Load config with standard CLI error handling, and set up logging from it."""
    try:
        settings = load_config(overrides=overrides)
    except ValueError as e:
        _fail(str(e))
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")
    return settings


def _run(settings: Settings, fn: Callable[[AppContext], Awaitable[T]]) -> T:
    """Run fn against a fresh context; AppErrors become CLI failures."""
    async def main() -> T:
        ctx = build_context(settings)
        try:
            return await fn(ctx)
        finally:
            await ctx.aclose()

    try:
        return asyncio.run(main())
    except AppError as e:
        _fail(e.message)


def _echo_move(result: MoveResult) -> None:
    typer.echo(f"  {result.old_path} -> {result.new_path} ({result.sha})")
    if result.partial:
        typer.echo(f"Warning: {result.old_path} could not be removed: {result.delete_error}", err=True)


def init_cmd(
    reset: Annotated[bool, typer.Option("--reset", help="Drop and recreate all tables")] = False,
    ):
    """Initialize database schema. Use --reset to clear existing data."""
    settings = _settings()
    try:
        db = require_db(settings)
    except AppError as e:
        _fail(e.message)

    async def main() -> None:
        try:
            await db.init(reset=reset)
        finally:
            await db.dispose()

    asyncio.run(main())
    if reset:
        typer.echo("Existing data cleared.")
    typer.echo(f"Database initialized at: {settings.db_url}")


def categories_cmd():
    """List top-level category folders in the content repo."""
    settings = _settings()
    names = _run(settings, lambda ctx: ctx.content.list_all_categories())
    if not names:
        typer.echo("No categories found.")
        raise typer.Exit(1)
    for name in names:
        typer.echo(name)


def docs_cmd(
    category: Annotated[Optional[str], typer.Option("--category", help="Only list documents in this category")] = None,
    ):
    """List documents with their status and sha."""
    settings = _settings()

    async def fetch(ctx: AppContext):
        if category:
            return await ctx.content.list_docs_by_category(category)
        return await ctx.content.list_docs_with_content()

    docs = _run(settings, fetch)
    if not docs:
        typer.echo("No documents found.")
        raise typer.Exit(1)
    for doc in docs:
        typer.echo(f"  {doc.path}  [{doc.meta.get('status')}]  {doc.sha[:7]}")
    typer.echo(f"{len(docs)} document(s)")


def show_cmd(
    path: Annotated[str, typer.Argument(help="Document path relative to the content root")],
    ):
    """Print a document's metadata and body."""
    settings = _settings()
    doc = _run(settings, lambda ctx: ctx.content.get_doc(path))
    typer.echo(f"path: {doc.path}")
    typer.echo(f"sha:  {doc.sha}")
    for key, value in doc.meta.items():
        typer.echo(f"  {key}: {value}")
    typer.echo("")
    typer.echo(doc.content)


def archive_cmd(
    path: Annotated[str, typer.Argument(help="Document path relative to the content root")],
    sha: Annotated[Optional[str], typer.Option("--sha", help="Fail unless the document is at this sha")] = None,
    ):
    """Move a document into the archive."""
    settings = _settings()
    result = _run(settings, lambda ctx: ctx.content.archive_doc(path, expected_sha=sha))
    _echo_move(result.move)
    typer.echo(f"Archived {result.move.old_path}")


def unarchive_cmd(
    path: Annotated[str, typer.Argument(help="Archived document path, e.g. archived/hello.mdx")],
    sha: Annotated[Optional[str], typer.Option("--sha", help="Fail unless the document is at this sha")] = None,
    ):
    """Restore an archived document to its original category as a draft."""
    settings = _settings()
    result = _run(settings, lambda ctx: ctx.content.unarchive_doc(path, expected_sha=sha))
    _echo_move(result.move)
    typer.echo(f"Restored {result.move.new_path}")


def move_cmd(
    src: Annotated[str, typer.Argument(help="Current document path")],
    dst: Annotated[str, typer.Argument(help="New document path")],
    ):
    """Move or rename a document."""
    settings = _settings()
    result = _run(settings, lambda ctx: ctx.content.move_doc(src, dst))
    _echo_move(result)
    if result.partial:
        raise typer.Exit(1)


def category_create_cmd(
    name: Annotated[str, typer.Argument(help="Category name (single path segment)")],
    ):
    """Create an empty category."""
    settings = _settings()
    created = _run(settings, lambda ctx: ctx.content.create_category(name))
    typer.echo(f"Category {'created' if created else 'already exists'}: {name}")


def category_delete_cmd(
    name: Annotated[str, typer.Argument(help="Category name")],
    mode: Annotated[Optional[str], typer.Option("--mode", help="move | delete, required when the category has documents")] = None,
    ):
    """Delete a category, moving or deleting its documents."""
    settings = _settings()
    status, body = _run(settings, lambda ctx: category_service.delete_category(ctx, name, mode, is_admin=True))
    if not body["ok"]:
        _fail(body["error"]["message"])
    data: dict[str, Any] = body["data"]
    typer.echo(f"Deleted category {data['name']} - {data['moved']} moved, {data['removed']} removed")


def newsletter_send_cmd():
    """Mail queued, published articles to active subscribers."""
    settings = _settings()
    counts = _run(settings, send_queued)
    typer.echo(
        f"Newsletter - "
        f"{counts['queued']} queued, "
        f"{counts['sent']} sent, "
        f"{counts['skipped']} skipped, "
        f"{counts['recipients']} recipient(s)"
    )
