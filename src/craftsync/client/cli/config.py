"""Configuration utilities for CraftSync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
from pathlib import Path


def get_config_dir() -> Path:
    """Get the configuration directory for CraftSync.

    Returns:
        Path to ~/.craftsync or equivalent.
    """
    return Path.home() / ".craftsync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, str]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, str]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_sync_folder() -> Path:
    """Get the sync folder path.

    Returns:
        Path to the sync folder (configured or default ~/CraftSync).
    """
    config = load_config()
    if config.get("sync_folder"):
        return Path(config["sync_folder"]).expanduser().resolve()
    return Path.home() / "CraftSync"


def resolve_target(folder: str | None, server_url: str | None) -> tuple[Path, str | None]:
    """Resolve the folder and server for a command.

    Values given on the command line are persisted and win over the stored
    ones.

    Returns:
        Tuple of (sync folder, server URL or None if never configured).
    """
    config = load_config()
    changed = False
    if folder:
        config["sync_folder"] = str(Path(folder).expanduser().resolve())
        changed = True
    if server_url:
        config["server_url"] = server_url
        changed = True
    if changed:
        save_config(config)
    return get_sync_folder(), config.get("server_url")
