"""
Entry point for running contact_share as a module.

Usage:
    python -m contact_share --help
    python -m contact_share init
    python -m contact_share add "Jane Doe" 555-0100
"""

from contact_share.cli import cli

if __name__ == "__main__":
    cli()
