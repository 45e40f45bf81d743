"""
Tests for the sync engine and application state.
"""

import threading
import time
from unittest.mock import patch

import pytest

from contact_share.api.cloudkit_api import CloudKitAPIError, RecordNotFoundError
from contact_share.api.records import DatabaseScope, SavePolicy, ZoneID
from contact_share.sync.engine import SyncEngine
from contact_share.sync.state import Error, Loaded, Loading
from contact_share.sync.zone import ZONE_CREATED_FLAG

PRIVATE = DatabaseScope.PRIVATE
SHARED = DatabaseScope.SHARED


@pytest.fixture
def engine(store, db):
    """Create an engine over a provisioned private zone."""
    store.add_zone(PRIVATE, ZoneID("Contacts"))
    return SyncEngine(store, db)


class TestInitialState:
    """Tests for the initial application state."""

    def test_starts_loading(self, engine):
        """Test the default initial state."""
        assert engine.state == Loading()

    def test_explicit_initial_state(self, store, db):
        """Test that a preview state can be injected."""
        preview = Loaded(private=(), shared=())
        assert SyncEngine(store, db, state=preview).state is preview


class TestInitialize:
    """Tests for SyncEngine.initialize."""

    def test_creates_zone_then_refreshes(self, store, db):
        """Test first run on a fresh account."""
        engine = SyncEngine(store, db)
        state = engine.initialize()

        assert store.call_count("create_zone") == 1
        assert db.get_flag(ZONE_CREATED_FLAG) is True
        assert state == Loaded(private=(), shared=())
        assert engine.state == state

    def test_second_initialize_skips_create(self, store, db):
        """Test that the zone is only created once."""
        engine = SyncEngine(store, db)
        engine.initialize()
        engine.initialize()

        assert store.call_count("create_zone") == 1

    def test_zone_failure_sets_error_and_raises(self, store, db):
        """Test that a failed create is surfaced both ways."""
        failure = CloudKitAPIError("not signed in", server_error_code="AUTHENTICATION_REQUIRED")
        store.failures["create_zone"] = failure
        engine = SyncEngine(store, db)

        with pytest.raises(CloudKitAPIError):
            engine.initialize()

        assert engine.state == Error(failure)
        assert store.call_count("fetch_change_page") == 0

    def test_unexpected_zone_failure_sets_error(self, store, db):
        """Test that a non-API failure during zone creation also becomes Error."""
        failure = OSError("disk full")
        engine = SyncEngine(store, db, state=Loaded())

        with patch.object(engine.provisioner, "ensure_zone", side_effect=failure):
            with pytest.raises(OSError):
                engine.initialize()

        assert engine.state == Error(failure)


class TestRefresh:
    """Tests for SyncEngine.refresh."""

    def test_loads_private_and_shared(self, store, engine):
        """Test that both scopes end up in the state."""
        store.put_contact(PRIVATE, ZoneID("Contacts"), "Jane Doe", "555-0100", "p1")
        shared_zone = ZoneID("Contacts", "_friend")
        store.add_zone(SHARED, shared_zone)
        store.put_contact(SHARED, shared_zone, "John Roe", "555-0199", "s1")

        state = engine.refresh()

        assert isinstance(state, Loaded)
        assert [c.id for c in state.private] == ["p1"]
        assert [c.id for c in state.shared] == ["s1"]

    def test_no_shared_zones_skips_shared_fetch(self, store, engine):
        """Test that nothing is fetched from the shared scope when it is empty."""
        state = engine.refresh()

        assert state == Loaded(private=(), shared=())
        shared_pages = [
            call for call in store.calls
            if call[0] == "fetch_change_page" and call[1] == SHARED
        ]
        assert shared_pages == []
        assert store.call_count("list_zones") == 1

    def test_transitions_through_loading(self, store, engine):
        """Test that listeners see Loading followed by the result."""
        seen = []
        engine.subscribe(seen.append)

        engine.refresh()

        assert isinstance(seen[0], Loading)
        assert isinstance(seen[1], Loaded)
        assert len(seen) == 2

    def test_unsubscribe(self, engine):
        """Test that a removed listener is no longer called."""
        seen = []
        unsubscribe = engine.subscribe(seen.append)
        unsubscribe()

        engine.refresh()

        assert seen == []

    def test_listener_may_read_state(self, engine):
        """Test that listeners can read the state they are notified about."""
        seen = []
        engine.subscribe(lambda state: seen.append(engine.state))

        engine.refresh()

        assert isinstance(seen[-1], Loaded)

    def test_private_failure_gives_error(self, store, engine):
        """Test that a private fetch failure becomes the Error state."""
        failure = CloudKitAPIError("quota", server_error_code="QUOTA_EXCEEDED")
        store.zone_failures[ZoneID("Contacts")] = failure

        state = engine.refresh()

        assert state == Error(failure)
        assert state.message == "quota"

    def test_shared_failure_gives_error(self, store, engine):
        """Test that a shared listing failure becomes the Error state."""
        store.failures["list_zones"] = CloudKitAPIError("network down")

        state = engine.refresh()

        assert isinstance(state, Error)
        assert "network down" in state.message

    def test_failure_replaces_previous_lists(self, store, engine):
        """Test that a failed refresh never keeps half of the old result."""
        store.put_contact(PRIVATE, ZoneID("Contacts"), "Jane Doe", "555-0100")
        assert isinstance(engine.refresh(), Loaded)

        store.failures["list_zones"] = CloudKitAPIError("network down")
        state = engine.refresh()

        assert isinstance(state, Error)
        assert engine.state is state

    def test_missing_zone_gives_error(self, store, db):
        """Test refreshing before the zone exists."""
        state = SyncEngine(store, db).refresh()

        assert isinstance(state, Error)
        assert isinstance(state.error, RecordNotFoundError)

    def test_unexpected_failure_gives_error(self, store, db):
        """Test that a non-API exception still ends the refresh in Error."""
        store.add_zone(PRIVATE, ZoneID("Contacts"))
        failure = KeyError("zoneID")
        store.failures["list_zones"] = failure
        engine = SyncEngine(store, db, state=Loaded())

        state = engine.refresh()

        assert state == Error(failure)
        assert engine.state is state

    def test_both_fetches_complete_before_result(self, store, engine):
        """Test that a fast failure still waits for the other fetch."""
        finished = threading.Event()

        def slow_private():
            time.sleep(0.05)
            finished.set()
            return []

        store.failures["list_zones"] = CloudKitAPIError("network down")
        with patch.object(engine, "fetch_private_contacts", side_effect=slow_private):
            state = engine.refresh()

        assert finished.is_set()
        assert isinstance(state, Error)

    def test_both_failing_reports_one_of_them(self, engine):
        """Test that one of two failures wins."""
        private_error = CloudKitAPIError("private failed")
        shared_error = CloudKitAPIError("shared failed")

        with (
            patch.object(engine, "fetch_private_contacts", side_effect=private_error),
            patch.object(engine, "fetch_shared_contacts", side_effect=shared_error),
        ):
            state = engine.refresh()

        assert isinstance(state, Error)
        assert state.error in (private_error, shared_error)


class TestFetchPrivateAndShared:
    """Tests for the joined fetch used by refresh."""

    def test_returns_both_lists(self, store, engine):
        """Test the tuple result."""
        store.put_contact(PRIVATE, ZoneID("Contacts"), "Jane Doe", "555-0100", "p1")

        private, shared = engine.fetch_private_and_shared_contacts()

        assert [c.id for c in private] == ["p1"]
        assert shared == []

    def test_raises_instead_of_setting_state(self, store, engine):
        """Test that errors propagate to the caller."""
        store.failures["list_zones"] = CloudKitAPIError("network down")

        with pytest.raises(CloudKitAPIError):
            engine.fetch_private_and_shared_contacts()
        assert engine.state == Loading()


class TestAddContact:
    """Tests for SyncEngine.add_contact."""

    def test_add_then_refresh_lists_contact(self, engine):
        """Test that a new contact shows up after the next refresh."""
        engine.add_contact("Jane Doe", "555-0100")
        state = engine.refresh()

        assert isinstance(state, Loaded)
        assert [(c.name, c.phone_number) for c in state.private] == [
            ("Jane Doe", "555-0100")
        ]

    def test_add_does_not_change_state(self, engine):
        """Test that the state only changes on refresh."""
        engine.add_contact("Jane Doe", "555-0100")
        assert engine.state == Loading()

    def test_saves_with_overwrite_policy(self, store, engine):
        """Test the save policy used for new contacts."""
        engine.add_contact("Jane Doe", "555-0100")

        saves = [call for call in store.calls if call[0] == "save_records"]
        assert saves[0][2] == SavePolicy.ALL_KEYS

    def test_save_failure_propagates(self, store, engine):
        """Test that a failed save is raised to the caller."""
        store.failures["save_records"] = CloudKitAPIError("quota")

        with pytest.raises(CloudKitAPIError, match="quota"):
            engine.add_contact("Jane Doe", "555-0100")


class TestCheckReadiness:
    """Tests for SyncEngine.check_readiness."""

    def test_ready(self, store, engine):
        """Test a working container."""
        engine.check_readiness()
        assert ("list_zones", PRIVATE) in store.calls

    def test_not_ready(self, store, engine):
        """Test that the backend error is raised."""
        store.failures["list_zones"] = CloudKitAPIError(
            "bad container", server_error_code="BAD_CONTAINER"
        )
        with pytest.raises(CloudKitAPIError) as exc_info:
            engine.check_readiness()
        assert exc_info.value.server_error_code == "BAD_CONTAINER"
