"""CraftSync server: object storage, file API and sync gateway."""
