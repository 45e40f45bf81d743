"""Record store interface consumed by the sync layer. Implemented by CloudKitAPI."""

from collections.abc import Iterable
from typing import Protocol

from contact_share.api.records import (
    AcceptShareResult,
    ChangePage,
    DatabaseScope,
    Record,
    SavePolicy,
    Share,
    ShareMetadata,
    ZoneID,
)


class RecordStore(Protocol):
    """Managed record store holding zones, records and shares."""

    container_identifier: str

    def create_zone(self, zone_id: ZoneID) -> None:
        """Create a zone in the private database. Creating an existing zone is a no-op."""
        ...

    def list_zones(self, scope: DatabaseScope) -> list[ZoneID]:
        """Return every zone visible in the given database scope."""
        ...

    def fetch_change_page(
        self, scope: DatabaseScope, zone_id: ZoneID, sync_token: str | None = None
    ) -> ChangePage:
        """Return the next page of changes in a zone after ``sync_token``."""
        ...

    def save_record(
        self,
        record: Record,
        save_policy: SavePolicy = SavePolicy.IF_SERVER_RECORD_UNCHANGED,
        scope: DatabaseScope = DatabaseScope.PRIVATE,
    ) -> Record:
        """Save one record and return the server copy."""
        ...

    def save_records(
        self,
        records: list[Record],
        deletions: Iterable[str] = (),
        save_policy: SavePolicy = SavePolicy.IF_SERVER_RECORD_UNCHANGED,
        scope: DatabaseScope = DatabaseScope.PRIVATE,
    ) -> list[Record]:
        """Save and delete records in one atomic write."""
        ...

    def fetch_record(
        self,
        record_name: str,
        zone_id: ZoneID,
        scope: DatabaseScope = DatabaseScope.PRIVATE,
    ) -> Record:
        """Fetch a record by name. Raises RecordNotFoundError when missing."""
        ...

    def create_share(self, root_record: Record, title: str) -> Share:
        """Build an unsaved share for ``root_record`` and link the root to it."""
        ...

    def resolve_share(self, short_guid: str) -> ShareMetadata:
        """Look up the metadata of a share from its link identifier."""
        ...

    def accept_shares(self, metadatas: list[ShareMetadata]) -> list[AcceptShareResult]:
        """Accept shares, returning one result per share."""
        ...


class FlagStore(Protocol):
    """Small persisted key/value store for boolean markers."""

    def get_flag(self, key: str) -> bool:
        ...

    def set_flag(self, key: str, value: bool) -> None:
        ...
