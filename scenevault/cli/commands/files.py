"""scenevault files — push and pull encrypted file attachments.

``files push`` encodes each local file into an encrypted envelope (file id =
SHA-1 of its data URL) and uploads it under the given prefix.  ``files pull``
downloads ids from a prefix, decrypts them and writes the raw bytes to a
directory.  Per-file failures are reported and reflected in the exit code,
but never stop the rest of the batch.

Exit codes:
  0 — every file transferred
  1 — user error, or at least one file failed
  2 — configuration invalid / backend unavailable
  3 — storage error
"""
from __future__ import annotations

import asyncio
import logging
import mimetypes
import pathlib
from typing import Any

import typer

from scenevault.contracts.elements import MIME_TYPE_BINARY, FileToSave
from scenevault.errors import ExitCode, SceneVaultError
from scenevault.services.file_codec import decode_data_url, prepare_file
from scenevault.services.storage import SceneStorage, open_storage

logger = logging.getLogger(__name__)

app = typer.Typer()


def _guess_mime_type(path: pathlib.Path) -> str:
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type or MIME_TYPE_BINARY


# ---------------------------------------------------------------------------
# Async cores — fully injectable for tests
# ---------------------------------------------------------------------------


async def _push_files_async(
    *,
    storage: SceneStorage,
    prefix: str,
    files: list[tuple[pathlib.Path, FileToSave]],
) -> int:
    """Upload prepared files; returns the number of errored files."""
    result = await storage.save_files(prefix, [prepared for _, prepared in files])
    errored = set(result.errored_files)
    for path, prepared in files:
        mark = "❌" if prepared["id"] in errored else "✅"
        typer.echo(f"{mark} {prepared['id']}  {path}")
    return len(errored)


async def _pull_files_async(
    *,
    storage: SceneStorage,
    prefix: str,
    room_key: str,
    file_ids: list[str],
    out_dir: pathlib.Path,
) -> int:
    """Download and write files; returns the number of errored files."""
    result = await storage.load_files(prefix, room_key, file_ids)
    out_dir.mkdir(parents=True, exist_ok=True)
    failed = len(result.errored_files)
    for loaded in result.loaded_files:
        try:
            mime_type, data = decode_data_url(loaded["dataURL"])
        except SceneVaultError as exc:
            typer.echo(f"❌ {loaded['id']}  {exc}")
            failed += 1
            continue
        dest = out_dir / f"{loaded['id']}{mimetypes.guess_extension(mime_type) or ''}"
        dest.write_bytes(data)
        typer.echo(f"✅ {loaded['id']}  {dest}")
    for file_id in result.errored_files:
        typer.echo(f"❌ {file_id}  not loaded")
    return failed


def _run(command: str, coro: Any) -> int:
    try:
        return asyncio.run(coro)
    except SceneVaultError as exc:
        typer.echo(f"❌ scenevault files {command} failed: {exc}")
        raise typer.Exit(code=exc.exit_code)
    except Exception as exc:
        typer.echo(f"❌ scenevault files {command} failed: {exc}")
        logger.error("❌ scenevault files %s error: %s", command, exc, exc_info=True)
        raise typer.Exit(code=ExitCode.INTERNAL_ERROR)


# ---------------------------------------------------------------------------
# Typer commands
# ---------------------------------------------------------------------------


@app.command("push")
def push(
    prefix: str = typer.Argument(..., help="Blob prefix, usually the room's file folder."),
    paths: list[pathlib.Path] = typer.Argument(..., help="Files to upload."),
    key: str = typer.Option(..., "--key", "-k", help="Room key.", envvar="SCENEVAULT_ROOM_KEY"),
) -> None:
    """Encrypt and upload local files."""
    prepared: list[tuple[pathlib.Path, FileToSave]] = []
    for path in paths:
        try:
            data = path.read_bytes()
        except OSError as exc:
            typer.echo(f"❌ Could not read {path}: {exc}")
            raise typer.Exit(code=ExitCode.USER_ERROR)
        try:
            prepared.append((path, prepare_file(data, mime_type=_guess_mime_type(path), encryption_key=key)))
        except SceneVaultError as exc:
            typer.echo(f"❌ {exc}")
            raise typer.Exit(code=exc.exit_code)

    async def _main() -> int:
        async with open_storage() as storage:
            return await _push_files_async(storage=storage, prefix=prefix, files=prepared)

    if _run("push", _main()):
        raise typer.Exit(code=ExitCode.USER_ERROR)


@app.command("pull")
def pull(
    prefix: str = typer.Argument(..., help="Blob prefix, usually the room's file folder."),
    file_ids: list[str] = typer.Argument(..., help="File ids to download."),
    key: str = typer.Option(..., "--key", "-k", help="Room key.", envvar="SCENEVAULT_ROOM_KEY"),
    out: pathlib.Path = typer.Option(pathlib.Path("."), "--out", "-o", help="Destination directory."),
) -> None:
    """Download and decrypt files by id."""

    async def _main() -> int:
        async with open_storage() as storage:
            return await _pull_files_async(
                storage=storage,
                prefix=prefix,
                room_key=key,
                file_ids=file_ids,
                out_dir=out,
            )

    if _run("pull", _main()):
        raise typer.Exit(code=ExitCode.USER_ERROR)
