"""CraftSync - keep a local folder in sync with a remote object store."""

__version__ = "0.1.0"
