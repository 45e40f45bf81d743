"""
Share creation and acceptance for single contacts.

A contact is shared by attaching a share record to its backing record.
The share and the root record are saved in one atomic write, so a share
only becomes durable together with the record it exposes.
"""

import logging
from urllib.parse import urlparse

from contact_share.api.cloudkit_api import CloudKitAPIError, RecordNotFoundError
from contact_share.api.records import (
    AcceptShareResult,
    Record,
    Share,
    ShareMetadata,
)
from contact_share.api.store import RecordStore
from contact_share.sync.contact import Contact

# Title prefix shown to invitees
SHARE_TITLE_PREFIX = "Contact: "

logger = logging.getLogger(__name__)


class ShareError(Exception):
    """Raised when a share is not in the state the client expects."""

    pass


class InvalidRemoteShareError(ShareError):
    """Raised when a referenced share is missing or is not a share record."""

    pass


class ShareContainerMismatchError(ShareError):
    """Raised when accepting a share that belongs to another container."""

    pass


def short_guid_from_link(url_or_guid: str) -> str:
    """
    Extract the short GUID from a share link.

    Accepts either a full link such as
    ``https://www.icloud.com/share/0aBcD#Contact`` or the bare identifier.

    Raises:
        ValueError: If no identifier can be found
    """
    value = url_or_guid.strip()
    if "://" in value:
        path = urlparse(value).path.rstrip("/")
        value = path.rsplit("/", 1)[-1]

    if not value:
        raise ValueError(f"No share identifier in {url_or_guid!r}")
    return value


def share_title(contact: Contact) -> str:
    return f"{SHARE_TITLE_PREFIX}{contact.name}"


class ShareResolver:
    """
    Returns the share of a contact, creating it on first use.

    Usage:
        resolver = ShareResolver(api)
        share, container = resolver.fetch_or_create_share(contact)
        print(share.url)
    """

    def __init__(self, store: RecordStore, container_identifier: str | None = None):
        self.store = store
        self.container_identifier = container_identifier or store.container_identifier

    def fetch_or_create_share(self, contact: Contact) -> tuple[Share, str]:
        """
        Fetch the contact's existing share or create a new one.

        Args:
            contact: Contact whose backing record is the share root

        Returns:
            Tuple of (share, container identifier)

        Raises:
            InvalidRemoteShareError: If the referenced share cannot be found
                or is not a share
            CloudKitAPIError: If fetching or saving fails
        """
        root = contact.record

        if root.share is not None:
            share = self._fetch_share(root)
            logger.debug(f"Found existing share {share.record_name} for {contact.id}")
            return share, self.container_identifier

        return self._create_share(contact), self.container_identifier

    def _fetch_share(self, root: Record) -> Share:
        record_name = root.share.record_name
        try:
            record = self.store.fetch_record(record_name, root.share.zone_id)
        except RecordNotFoundError as e:
            raise InvalidRemoteShareError(
                f"Share {record_name} referenced by the contact was not found"
            ) from e

        try:
            share = Share.from_record(record)
        except ValueError as e:
            raise InvalidRemoteShareError(str(e)) from e

        # Share lookups do not carry the parent reference
        if not share.root_record_name:
            share.root_record_name = root.record_name
        return share

    def _create_share(self, contact: Contact) -> Share:
        root = contact.record
        previous_reference = root.share

        share = self.store.create_share(root, share_title(contact))
        share_record = share.to_record()

        try:
            self.store.save_records([root, share_record])
        except CloudKitAPIError as e:
            root.share = previous_reference
            logger.error(f"Failed to save share for contact {contact.id}: {e}")
            raise

        share.change_tag = share_record.change_tag
        share.short_guid = share_record.short_guid
        logger.info(f"Created share {share.record_name} for contact {contact.id}")
        return share

    def resolve_metadata(self, url_or_guid: str) -> ShareMetadata:
        """
        Look up the metadata of a share link.

        Raises:
            ValueError: If the link carries no identifier
            CloudKitAPIError: If resolving fails
        """
        return self.store.resolve_share(short_guid_from_link(url_or_guid))

    def accept_share(self, metadata: ShareMetadata) -> list[AcceptShareResult]:
        """
        Accept a share so its zone appears in the shared database.

        Args:
            metadata: Metadata from resolve_metadata()

        Returns:
            Per-share results

        Raises:
            ShareContainerMismatchError: If the share belongs to another container
            CloudKitAPIError: If the request fails or any share was not accepted
        """
        if metadata.container_identifier != self.container_identifier:
            raise ShareContainerMismatchError(
                f"Share belongs to container '{metadata.container_identifier}', "
                f"expected '{self.container_identifier}'"
            )

        results = self.store.accept_shares([metadata])

        first_error = None
        for result in results:
            if result.ok:
                logger.info(f"Accepted share {result.metadata.short_guid}")
            else:
                logger.error(
                    f"Error accepting share {result.metadata.short_guid}: {result.error}"
                )
                first_error = first_error or result.error

        if first_error is not None:
            raise first_error
        return results
