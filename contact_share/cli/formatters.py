"""CLI output formatting functions.

This module renders the application state, contact lists and share
information to the command line.
"""

from collections.abc import Sequence
from typing import TYPE_CHECKING

import click

from contact_share.sync.state import AppState, Error, Loaded, Loading

if TYPE_CHECKING:
    from contact_share.api.records import AcceptShareResult, Share
    from contact_share.sync.contact import Contact


def format_contact(contact: "Contact") -> str:
    """Format a contact as a single line."""
    line = f"{contact.name} <{contact.phone_number}>"
    if contact.is_shared:
        line += click.style(" [shared]", fg="cyan")
    return line


def print_contacts(title: str, contacts: Sequence["Contact"], verbose: bool = False) -> None:
    """
    Display one contact list with a heading.

    Args:
        title: Heading for the list
        contacts: Contacts to display, sorted by name
        verbose: Also show record identifiers
    """
    click.echo(f"\n=== {title} ({len(contacts)}) ===")
    if not contacts:
        click.echo("  (none)")
        return

    for contact in sorted(contacts, key=lambda c: (c.name.lower(), c.id)):
        if verbose:
            click.echo(f"  {format_contact(contact)}  id={contact.id}")
        else:
            click.echo(f"  {format_contact(contact)}")


def print_state(state: AppState, verbose: bool = False) -> None:
    """Display the application state."""
    if isinstance(state, Loading):
        click.echo("Loading...")
    elif isinstance(state, Loaded):
        print_contacts("My Contacts", state.private, verbose)
        print_contacts("Shared With Me", state.shared, verbose)
    elif isinstance(state, Error):
        click.echo(
            click.style(f"An error occurred: {state.message}", fg="red"), err=True
        )


def print_share(share: "Share", container_identifier: str) -> None:
    """Display a share and its link."""
    click.echo(f"Share: {share.record_name}")
    if share.title:
        click.echo(f"Title: {share.title}")
    click.echo(f"Container: {container_identifier}")
    if share.url:
        click.echo(click.style(f"Link: {share.url}", fg="green"))
    else:
        click.echo(click.style("Link: not yet assigned by the server", fg="yellow"))


def print_accept_results(results: Sequence["AcceptShareResult"]) -> None:
    """Display the outcome of accepting shares."""
    for result in results:
        metadata = result.metadata
        owner = f" from {metadata.owner_name}" if metadata.owner_name else ""
        if result.ok:
            click.echo(click.style(f"Accepted share {metadata.short_guid}{owner}", fg="green"))
        else:
            click.echo(
                click.style(
                    f"Failed to accept share {metadata.short_guid}: {result.error}",
                    fg="red",
                ),
                err=True,
            )
