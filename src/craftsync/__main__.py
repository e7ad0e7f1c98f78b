"""Allow ``python -m craftsync``."""

from craftsync.client.cli import cli

if __name__ == "__main__":
    cli()
