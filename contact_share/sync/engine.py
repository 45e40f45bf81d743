"""
Sync engine for private and shared contacts.

Orchestrates zone provisioning, concurrent fetching of the private and
shared scopes, and the application state transitions that follow.
"""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import ALL_COMPLETED, ThreadPoolExecutor, wait
from typing import Optional

from contact_share.api.cloudkit_api import CloudKitAPIError
from contact_share.api.records import DatabaseScope, SavePolicy, ZoneID
from contact_share.api.store import FlagStore, RecordStore
from contact_share.sync.contact import Contact, new_contact_record
from contact_share.sync.fetcher import DEFAULT_MAX_WORKERS, ChangeFetcher
from contact_share.sync.state import AppState, Error, Loaded, Loading
from contact_share.sync.zone import DEFAULT_ZONE_NAME, ZoneProvisioner

logger = logging.getLogger(__name__)

StateListener = Callable[[AppState], None]


class SyncEngine:
    """
    Owner of the application state.

    All state changes go through this class; presentation code reads
    ``state`` or subscribes to transitions. Overlapping refresh() calls
    are not deduplicated and the last one to finish wins.

    Usage:
        engine = SyncEngine(api, db)
        engine.initialize()  # creates the zone if needed, then refreshes

        engine.add_contact("Jane Doe", "555-0100")
        state = engine.refresh()
        if isinstance(state, Loaded):
            for contact in state.private:
                print(contact.name)
    """

    def __init__(
        self,
        store: RecordStore,
        flags: FlagStore,
        zone_name: str = DEFAULT_ZONE_NAME,
        max_workers: int = DEFAULT_MAX_WORKERS,
        state: Optional[AppState] = None,
    ):
        """
        Initialize the sync engine.

        Args:
            store: Record store backend
            flags: Persisted flag store for the zone marker
            zone_name: Name of the managed private zone
            max_workers: Zones fetched concurrently within one scope
            state: Explicit initial state (defaults to Loading)
        """
        self.store = store
        self.zone_id = ZoneID(zone_name=zone_name)
        self.provisioner = ZoneProvisioner(store, flags, self.zone_id)
        self.fetcher = ChangeFetcher(store, max_workers=max_workers)

        self._state: AppState = state if state is not None else Loading()
        self._state_lock = threading.Lock()
        self._listeners: list[StateListener] = []

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> AppState:
        with self._state_lock:
            return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a callback invoked after every state transition.

        Returns:
            Function removing the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: AppState) -> None:
        with self._state_lock:
            self._state = state
            listeners = list(self._listeners)

        for listener in listeners:
            listener(state)

    # =========================================================================
    # Operations
    # =========================================================================

    def initialize(self) -> AppState:
        """
        Create the custom zone if needed and perform the initial fetch.

        Returns:
            State after the initial refresh

        Raises:
            Exception: Whatever made zone creation fail (state becomes Error)
        """
        try:
            self.provisioner.ensure_zone()
        except Exception as e:
            self._set_state(Error(e))
            raise

        return self.refresh()

    def refresh(self) -> AppState:
        """
        Fetch contacts from both scopes and replace the state.

        Returns:
            Loaded with both lists, or Error with the failure
        """
        self._set_state(Loading())

        try:
            private_contacts, shared_contacts = self.fetch_private_and_shared_contacts()
        except Exception as e:
            logger.error(f"Refresh failed: {e}")
            new_state: AppState = Error(e)
        else:
            logger.info(
                f"Refreshed {len(private_contacts)} private and "
                f"{len(shared_contacts)} shared contacts"
            )
            new_state = Loaded(
                private=tuple(private_contacts), shared=tuple(shared_contacts)
            )

        self._set_state(new_state)
        return new_state

    def fetch_private_and_shared_contacts(
        self,
    ) -> tuple[list[Contact], list[Contact]]:
        """
        Fetch private and shared contacts concurrently.

        Both fetches always run to completion before this returns.

        Returns:
            Tuple of (private contacts, shared contacts)

        Raises:
            CloudKitAPIError: The failure of either fetch; when both fail,
                either error may be the one raised
        """
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="scope-fetch") as executor:
            private_future = executor.submit(self.fetch_private_contacts)
            shared_future = executor.submit(self.fetch_shared_contacts)
            wait([private_future, shared_future], return_when=ALL_COMPLETED)

        for future in (private_future, shared_future):
            error = future.exception()
            if error is not None:
                raise error

        return private_future.result(), shared_future.result()

    def fetch_private_contacts(self) -> list[Contact]:
        """Fetch contacts from the managed zone in the private database."""
        return self.fetcher.fetch_changes(DatabaseScope.PRIVATE, [self.zone_id])

    def fetch_shared_contacts(self) -> list[Contact]:
        """
        Fetch contacts from every zone shared with this account.

        Returns an empty list without further requests when nothing is shared.
        """
        zones = self.store.list_zones(DatabaseScope.SHARED)
        if not zones:
            logger.debug("No shared zones")
            return []

        return self.fetcher.fetch_changes(DatabaseScope.SHARED, zones)

    def add_contact(self, name: str, phone_number: str) -> None:
        """
        Save a new contact to the managed zone.

        Fields are written with an overwrite-all policy. The new contact
        appears in the state only after the next refresh().

        Raises:
            CloudKitAPIError: If the save fails
        """
        record = new_contact_record(name, phone_number, self.zone_id)

        try:
            self.store.save_record(record, save_policy=SavePolicy.ALL_KEYS)
        except CloudKitAPIError as e:
            logger.error(f"Error adding contact: {e}")
            raise

        logger.info(f"Added contact {record.record_name}")

    def check_readiness(self) -> None:
        """
        Verify the container and account are usable by listing private zones.

        Raises:
            CloudKitAPIError: Describing why the container is not ready
        """
        zones = self.store.list_zones(DatabaseScope.PRIVATE)
        logger.debug(f"Container ready ({len(zones)} private zones)")

    def __repr__(self) -> str:
        return f"SyncEngine(zone={self.zone_id}, state={type(self.state).__name__})"
