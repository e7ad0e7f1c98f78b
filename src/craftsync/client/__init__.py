"""Client module - Folder watcher, sync engine, transfer client and CLI."""
