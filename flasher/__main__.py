"""Allow running as ``python -m flasher``."""

from __future__ import annotations

from flasher.main import cli

if __name__ == "__main__":
    cli()
