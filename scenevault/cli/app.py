"""SceneVault CLI — Typer application root.

Entry point for the ``scenevault`` console script.  Registers the key,
database, scene and file subcommands.
"""
from __future__ import annotations

import logging

import typer

from scenevault.cli.commands import db, files, keygen, scene
from scenevault.config import settings

cli = typer.Typer(
    name="scenevault",
    help="SceneVault — encrypted scene and file storage for collaborative drawing rooms.",
    no_args_is_help=True,
)


@cli.callback()
def _configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if (verbose or settings.debug) else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


cli.command("keygen", help="Generate a new room key.")(keygen.keygen)
cli.add_typer(db.app, name="db", help="Manage the scene database.")
cli.add_typer(scene.app, name="scene", help="Load or save a room's encrypted scene.")
cli.add_typer(files.app, name="files", help="Upload or download encrypted file attachments.")


if __name__ == "__main__":
    cli()
