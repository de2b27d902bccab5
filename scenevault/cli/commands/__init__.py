"""SceneVault CLI subcommands."""
