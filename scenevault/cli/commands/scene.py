"""scenevault scene — inspect or seed a room's encrypted scene.

``scene load`` fetches and decrypts the stored scene for a room and prints
either a summary or the element JSON.  ``scene save`` reads an element list
from a JSON file and saves it exactly as a collaborating client would:
the stored scene is reconciled with the file's elements, not overwritten.

Exit codes:
  0 — success
  1 — user error (unreadable input file, bad JSON, scene not found)
  2 — configuration invalid / backend unavailable
  3 — storage error
  4 — wrong room key or corrupt scene
"""
from __future__ import annotations

import asyncio
import json
import logging
import pathlib
import uuid
from collections import Counter
from typing import Any, Optional

import typer

from scenevault.contracts.elements import AppStateDict, ElementDict
from scenevault.errors import ExitCode, SceneVaultError
from scenevault.services.scene_elements import restore_elements
from scenevault.services.scene_store import RoomPortal
from scenevault.services.scene_version import get_scene_version
from scenevault.services.storage import SceneStorage, open_storage

logger = logging.getLogger(__name__)

app = typer.Typer()


def _read_json(path: pathlib.Path, what: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        typer.echo(f"❌ Could not read {what} from {path}: {exc}")
        raise typer.Exit(code=ExitCode.USER_ERROR)


def _render_summary(room_id: str, elements: list[ElementDict]) -> None:
    """Print a terse human-readable summary of a scene."""
    live = [el for el in elements if not el.get("isDeleted")]
    by_type = Counter(str(el.get("type", "?")) for el in live)
    typer.echo(f"room:       {room_id}")
    typer.echo(f"version:    {get_scene_version(elements)}")
    typer.echo(f"elements:   {len(live)} live, {len(elements) - len(live)} deleted")
    for el_type, count in sorted(by_type.items()):
        typer.echo(f"  {el_type:<10} {count}")


# ---------------------------------------------------------------------------
# Async cores — fully injectable for tests
# ---------------------------------------------------------------------------


async def _load_scene_async(
    *,
    storage: SceneStorage,
    room_id: str,
    room_key: str,
    as_json: bool,
    keep_deleted: bool,
) -> None:
    elements = await storage.load_scene(room_id, room_key, delete_invisible=not keep_deleted)
    if elements is None:
        typer.echo(f"❌ No scene stored for room {room_id}")
        raise typer.Exit(code=ExitCode.USER_ERROR)
    if as_json:
        typer.echo(json.dumps(elements, indent=2))
        return
    _render_summary(room_id, elements)


async def _save_scene_async(
    *,
    storage: SceneStorage,
    room_id: str,
    room_key: str,
    elements: list[ElementDict],
    app_state: AppStateDict | None,
) -> None:
    portal = RoomPortal(room_id=room_id, room_key=room_key, connection_id=f"cli-{uuid.uuid4()}")
    try:
        stored = await storage.save_scene(portal, elements, app_state)
    finally:
        storage.forget_connection(portal.connection_id or "")
    if stored is None:
        typer.echo("Nothing to save.")
        return
    typer.echo(f"✅ Saved {len(stored)} element(s) to room {room_id} (version {get_scene_version(stored)})")


def _run(command: str, coro: Any) -> None:
    try:
        asyncio.run(coro)
    except typer.Exit:
        raise
    except SceneVaultError as exc:
        typer.echo(f"❌ scenevault scene {command} failed: {exc}")
        raise typer.Exit(code=exc.exit_code)
    except Exception as exc:
        typer.echo(f"❌ scenevault scene {command} failed: {exc}")
        logger.error("❌ scenevault scene %s error: %s", command, exc, exc_info=True)
        raise typer.Exit(code=ExitCode.INTERNAL_ERROR)


# ---------------------------------------------------------------------------
# Typer commands
# ---------------------------------------------------------------------------


@app.command("load")
def load(
    room_id: str = typer.Argument(..., help="Room identifier."),
    key: str = typer.Option(..., "--key", "-k", help="Room key.", envvar="SCENEVAULT_ROOM_KEY"),
    as_json: bool = typer.Option(False, "--json", help="Print the element list as JSON."),
    keep_deleted: bool = typer.Option(
        False,
        "--keep-deleted",
        help="Include deleted (tombstoned) and invisible elements.",
    ),
) -> None:
    """Fetch and decrypt a room's scene."""

    async def _main() -> None:
        async with open_storage() as storage:
            await _load_scene_async(
                storage=storage,
                room_id=room_id,
                room_key=key,
                as_json=as_json,
                keep_deleted=keep_deleted,
            )

    _run("load", _main())


@app.command("save")
def save(
    room_id: str = typer.Argument(..., help="Room identifier."),
    key: str = typer.Option(..., "--key", "-k", help="Room key.", envvar="SCENEVAULT_ROOM_KEY"),
    file: pathlib.Path = typer.Option(..., "--file", "-f", help="JSON file holding an element list."),
    app_state_file: Optional[pathlib.Path] = typer.Option(
        None,
        "--app-state",
        help="JSON file holding the client app state (in-progress elements).",
    ),
) -> None:
    """Reconcile a JSON element list into a room's stored scene."""
    payload = _read_json(file, "elements")
    if isinstance(payload, dict):
        payload = payload.get("elements")
    if not isinstance(payload, list):
        typer.echo(f"❌ {file} must contain an element list (or an object with an 'elements' list)")
        raise typer.Exit(code=ExitCode.USER_ERROR)
    app_state = _read_json(app_state_file, "app state") if app_state_file else None

    async def _main() -> None:
        async with open_storage() as storage:
            await _save_scene_async(
                storage=storage,
                room_id=room_id,
                room_key=key,
                elements=restore_elements(payload),
                app_state=app_state,
            )

    _run("save", _main())
