"""SceneVault — encrypted scene and file persistence for collaborative drawing rooms."""
