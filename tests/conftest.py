"""
Shared fixtures for the contact_share test suite.

Provides an in-memory record store implementing the same interface as
CloudKitAPI, with configurable page size and failure injection.
"""

import copy
import itertools
import threading
import uuid

import pytest

from contact_share.api.cloudkit_api import CloudKitAPIError, RecordNotFoundError
from contact_share.api.records import (
    SHARE_RECORD_TYPE,
    AcceptShareResult,
    ChangePage,
    DatabaseScope,
    Record,
    SavePolicy,
    Share,
    ShareMetadata,
    ZoneID,
)
from contact_share.storage.db import SyncDatabase
from contact_share.sync.contact import CONTACT_RECORD_TYPE

TEST_CONTAINER = "iCloud.com.example.test"


class FakeRecordStore:
    """
    In-memory record store.

    Records are kept per (scope, zone) in insertion order. Change pages are
    slices of that order; the sync token is the offset of the next record.

    Failure injection:
        store.failures["save_records"] = CloudKitAPIError("QUOTA_EXCEEDED")
        store.zone_failures[zone_id] = CloudKitAPIError("ZONE_BUSY")
    """

    def __init__(self, container_identifier: str = TEST_CONTAINER, page_size: int = 2):
        self.container_identifier = container_identifier
        self.page_size = page_size
        self.zones: dict[tuple[DatabaseScope, ZoneID], dict[str, Record]] = {}
        self.failures: dict[str, Exception] = {}
        self.zone_failures: dict[ZoneID, Exception] = {}
        self.accept_errors: dict[str, CloudKitAPIError] = {}
        self.shares_by_guid: dict[str, ShareMetadata] = {}
        self.accepted: list[str] = []
        self.calls: list[tuple] = []
        self._tags = itertools.count(1)
        self._lock = threading.Lock()

    # ----- helpers -----

    def _record_call(self, name: str, *args) -> None:
        with self._lock:
            self.calls.append((name, *args))
        if name in self.failures:
            raise self.failures[name]

    def call_count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def add_zone(self, scope: DatabaseScope, zone_id: ZoneID) -> None:
        self.zones.setdefault((scope, zone_id), {})

    def put(self, scope: DatabaseScope, record: Record) -> Record:
        """Store a record directly, bypassing save semantics."""
        stored = copy.deepcopy(record)
        stored.change_tag = stored.change_tag or f"tag-{next(self._tags)}"
        self.zones.setdefault((scope, record.zone_id), {})[record.record_name] = stored
        return copy.deepcopy(stored)

    def put_contact(
        self, scope: DatabaseScope, zone_id: ZoneID, name, phone_number, record_name=None
    ) -> Record:
        fields = {}
        if name is not None:
            fields["name"] = name
        if phone_number is not None:
            fields["phoneNumber"] = phone_number
        return self.put(
            scope,
            Record(
                record_name=record_name or str(uuid.uuid4()),
                record_type=CONTACT_RECORD_TYPE,
                zone_id=zone_id,
                fields=fields,
            ),
        )

    # ----- RecordStore -----

    def create_zone(self, zone_id: ZoneID) -> None:
        self._record_call("create_zone", zone_id)
        self.add_zone(DatabaseScope.PRIVATE, zone_id)

    def list_zones(self, scope: DatabaseScope) -> list[ZoneID]:
        self._record_call("list_zones", scope)
        return [zone_id for (s, zone_id) in self.zones if s == scope]

    def fetch_change_page(self, scope, zone_id, sync_token=None) -> ChangePage:
        self._record_call("fetch_change_page", scope, zone_id, sync_token)
        if zone_id in self.zone_failures:
            raise self.zone_failures[zone_id]

        zone = self.zones.get((scope, zone_id))
        if zone is None:
            raise RecordNotFoundError(
                f"Zone not found: {zone_id}", server_error_code="ZONE_NOT_FOUND"
            )

        records = list(zone.values())
        start = int(sync_token or 0)
        end = start + self.page_size
        return ChangePage(
            zone_id=zone_id,
            records=copy.deepcopy(records[start:end]),
            more_coming=end < len(records),
            sync_token=str(min(end, len(records))),
        )

    def save_records(
        self,
        records,
        deletions=(),
        save_policy=SavePolicy.IF_SERVER_RECORD_UNCHANGED,
        scope=DatabaseScope.PRIVATE,
    ) -> list[Record]:
        self._record_call("save_records", [r.record_name for r in records], save_policy)

        with self._lock:
            # Validate everything first so the write is all-or-nothing
            for record in records:
                zone = self.zones.get((scope, record.zone_id))
                if zone is None:
                    raise RecordNotFoundError(
                        f"Zone not found: {record.zone_id}",
                        server_error_code="ZONE_NOT_FOUND",
                    )
                existing = zone.get(record.record_name)
                if (
                    save_policy == SavePolicy.IF_SERVER_RECORD_UNCHANGED
                    and existing is not None
                    and existing.change_tag != record.change_tag
                ):
                    raise CloudKitAPIError(
                        f"Conflict saving {record.record_name}",
                        server_error_code="CONFLICT",
                    )

            saved = []
            for record in records:
                record.change_tag = f"tag-{next(self._tags)}"
                if record.record_type == SHARE_RECORD_TYPE and not record.short_guid:
                    record.short_guid = f"guid-{uuid.uuid4().hex[:8]}"
                    self.shares_by_guid[record.short_guid] = ShareMetadata(
                        container_identifier=self.container_identifier,
                        short_guid=record.short_guid,
                        root_record_name=record.parent_record_name,
                        zone_id=record.zone_id,
                    )
                stored = copy.deepcopy(record)
                self.zones[(scope, record.zone_id)][record.record_name] = stored
                saved.append(copy.deepcopy(stored))

            for name in deletions:
                for zone in self.zones.values():
                    zone.pop(name, None)

        return saved

    def save_record(
        self,
        record,
        save_policy=SavePolicy.IF_SERVER_RECORD_UNCHANGED,
        scope=DatabaseScope.PRIVATE,
    ) -> Record:
        return self.save_records([record], save_policy=save_policy, scope=scope)[0]

    def fetch_record(self, record_name, zone_id, scope=DatabaseScope.PRIVATE) -> Record:
        self._record_call("fetch_record", record_name, zone_id)
        record = self.zones.get((scope, zone_id), {}).get(record_name)
        if record is None:
            raise RecordNotFoundError(
                f"Record not found: {record_name}", server_error_code="NOT_FOUND"
            )
        return copy.deepcopy(record)

    def create_share(self, root_record: Record, title: str) -> Share:
        self._record_call("create_share", root_record.record_name, title)
        share = Share(
            record_name=f"Share-{uuid.uuid4()}",
            zone_id=root_record.zone_id,
            root_record_name=root_record.record_name,
            title=title,
        )
        root_record.share = share.reference()
        return share

    def resolve_share(self, short_guid: str) -> ShareMetadata:
        self._record_call("resolve_share", short_guid)
        metadata = self.shares_by_guid.get(short_guid)
        if metadata is None:
            raise RecordNotFoundError(
                f"Share not found: {short_guid}", server_error_code="NOT_FOUND"
            )
        return metadata

    def accept_shares(self, metadatas) -> list[AcceptShareResult]:
        self._record_call("accept_shares", [m.short_guid for m in metadatas])
        results = []
        for metadata in metadatas:
            error = self.accept_errors.get(metadata.short_guid)
            if error is None:
                self.accepted.append(metadata.short_guid)
            results.append(AcceptShareResult(metadata=metadata, error=error))
        return results


@pytest.fixture
def store():
    """Create an empty in-memory record store."""
    return FakeRecordStore()


@pytest.fixture
def db():
    """Create an initialized in-memory database."""
    db = SyncDatabase(":memory:")
    db.initialize()
    return db


@pytest.fixture
def contacts_zone():
    return ZoneID(zone_name="Contacts")
