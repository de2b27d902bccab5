"""scenevault keygen — print a fresh room key.

The key is generated locally and never sent anywhere; share it with
collaborators out-of-band (it is the ``#key`` fragment of a room link).
"""
from __future__ import annotations

import typer

from scenevault.services.scene_crypto import generate_room_key


def keygen() -> None:
    """Generate a new 128-bit room key."""
    typer.echo(generate_room_key())
