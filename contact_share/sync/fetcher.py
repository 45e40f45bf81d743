"""
Change feed reader turning zone changes into contacts.

Each zone is read by its own page loop; the loops of different zones run
concurrently, while pages within a zone are requested strictly in order
since page N+1 needs page N's sync token.
"""

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait

from contact_share.api.records import DatabaseScope, ZoneID
from contact_share.api.store import RecordStore
from contact_share.sync.contact import CONTACT_RECORD_TYPE, Contact

# Default number of zones read at the same time
DEFAULT_MAX_WORKERS = 4

logger = logging.getLogger(__name__)


class ChangeFetcher:
    """
    Reads every contact from a set of zones via their change feeds.

    Sync tokens are not persisted: each call starts every zone from the
    beginning of its feed.

    Usage:
        fetcher = ChangeFetcher(api)
        contacts = fetcher.fetch_changes(DatabaseScope.PRIVATE, [ZoneID("Contacts")])
    """

    def __init__(self, store: RecordStore, max_workers: int = DEFAULT_MAX_WORKERS):
        self.store = store
        self.max_workers = max_workers

    def fetch_zone(self, scope: DatabaseScope, zone_id: ZoneID) -> list[Contact]:
        """
        Page through one zone's change feed until no more changes are coming.

        Records of another type, tombstones, and records missing a required
        field are skipped.

        Raises:
            CloudKitAPIError: If any page request fails
        """
        contacts: list[Contact] = []
        sync_token: str | None = None
        pages = 0
        dropped = 0

        while True:
            page = self.store.fetch_change_page(scope, zone_id, sync_token)
            pages += 1

            for record in page.records:
                if record.deleted or record.record_type != CONTACT_RECORD_TYPE:
                    continue
                contact = Contact.from_record(record)
                if contact is None:
                    dropped += 1
                    logger.debug(
                        f"Dropping record {record.record_name}: missing contact fields"
                    )
                    continue
                contacts.append(contact)

            sync_token = page.sync_token
            if not page.more_coming:
                break

        logger.debug(
            f"Read {len(contacts)} contacts from {scope.value} zone {zone_id} "
            f"in {pages} pages ({dropped} dropped)"
        )
        return contacts

    def fetch_changes(
        self, scope: DatabaseScope, zones: list[ZoneID]
    ) -> list[Contact]:
        """
        Fetch contacts from several zones concurrently.

        The first zone to fail fails the whole call; zones that have not
        started yet are cancelled.

        Args:
            scope: Database scope holding the zones
            zones: Zones to read

        Returns:
            Contacts from all zones, in no guaranteed order

        Raises:
            CloudKitAPIError: If fetching any zone fails
        """
        if not zones:
            return []

        if len(zones) == 1:
            return self.fetch_zone(scope, zones[0])

        workers = max(1, min(self.max_workers, len(zones)))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="zone-fetch"
        ) as executor:
            futures = [
                executor.submit(self.fetch_zone, scope, zone_id) for zone_id in zones
            ]
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)

            for future in futures:
                if future in done and future.exception() is not None:
                    for other in pending:
                        other.cancel()
                    raise future.exception()  # type: ignore[misc]

            contacts: list[Contact] = []
            for future in futures:
                contacts.extend(future.result())

        logger.info(
            f"Fetched {len(contacts)} contacts from {len(zones)} {scope.value} zones"
        )
        return contacts
