"""scenevault db — database housekeeping.

``db init`` creates the ``scenes`` table directly.  It is meant for SQLite
development databases; deployed databases are migrated with
``alembic upgrade head``.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import typer

from scenevault.db.database import close_db, create_tables, init_db
from scenevault.errors import ExitCode

logger = logging.getLogger(__name__)

app = typer.Typer()


async def _init_db_async(url: str | None) -> None:
    await init_db(url)
    try:
        await create_tables()
    finally:
        await close_db()


@app.command("init")
def init(
    url: Optional[str] = typer.Option(
        None,
        "--url",
        help="Database URL (defaults to SCENEVAULT_DATABASE_URL).",
    ),
) -> None:
    """Create the scene tables if they do not exist."""
    try:
        asyncio.run(_init_db_async(url))
    except Exception as exc:
        typer.echo(f"❌ scenevault db init failed: {exc}")
        logger.error("❌ scenevault db init error: %s", exc, exc_info=True)
        raise typer.Exit(code=ExitCode.INTERNAL_ERROR)
    typer.echo("✅ Database ready")
