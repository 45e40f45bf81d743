"""CLI package for contact_share."""

from contact_share.cli.formatters import (
    format_contact,
    print_accept_results,
    print_contacts,
    print_share,
    print_state,
)
from contact_share.cli.main import cli, create_engine, create_store, get_config_file

__all__ = [
    "cli",
    "create_engine",
    "create_store",
    "format_contact",
    "get_config_file",
    "print_accept_results",
    "print_contacts",
    "print_share",
    "print_state",
]
