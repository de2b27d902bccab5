"""SceneVault operator CLI."""
