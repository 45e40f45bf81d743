"""
Record-level data model for CloudKit Web Services.

Provides plain dataclasses for the objects exchanged with the record store:
- ZoneID and DatabaseScope for addressing
- Record, the opaque backing handle of every domain object
- Share and ShareReference for sharing a root record
- ChangePage for one page of a zone change feed
- ShareMetadata / AcceptShareResult for accepting shares

Each class converts to and from the CloudKit JSON shapes with
``from_api_response`` / ``to_api_format``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from contact_share.api.cloudkit_api import CloudKitAPIError

# System record type used by CloudKit for shares
SHARE_RECORD_TYPE = "cloudkit.share"

# System field holding the human-readable share title
SHARE_TITLE_FIELD = "cloudkit.title"

# Public host serving share links
SHARE_URL_BASE = "https://www.icloud.com/share/"


class DatabaseScope(str, Enum):
    """Database a request is addressed to."""

    PRIVATE = "private"  # Owner-only records
    SHARED = "shared"  # Records shared to this account by others
    PUBLIC = "public"


class SavePolicy(str, Enum):
    """How a save treats fields already on the server."""

    IF_SERVER_RECORD_UNCHANGED = "ifServerRecordUnchanged"
    CHANGED_KEYS = "changedKeys"
    ALL_KEYS = "allKeys"  # Overwrite every field, last writer wins


@dataclass(frozen=True)
class ZoneID:
    """Identifier of a record zone, optionally qualified by its owner."""

    zone_name: str
    owner_record_name: str | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> ZoneID:
        return cls(
            zone_name=data.get("zoneName", ""),
            owner_record_name=data.get("ownerRecordName"),
        )

    def to_api_format(self) -> dict[str, Any]:
        zone: dict[str, Any] = {"zoneName": self.zone_name}
        if self.owner_record_name:
            zone["ownerRecordName"] = self.owner_record_name
        return zone

    def __str__(self) -> str:
        if self.owner_record_name:
            return f"{self.zone_name}@{self.owner_record_name}"
        return self.zone_name


@dataclass(frozen=True)
class ShareReference:
    """Pointer from a root record to the share that exposes it."""

    record_name: str
    zone_id: ZoneID

    @classmethod
    def from_api_response(cls, data: dict[str, Any], default_zone: ZoneID) -> ShareReference:
        zone_data = data.get("zoneID")
        return cls(
            record_name=data.get("recordName", ""),
            zone_id=ZoneID.from_api_response(zone_data) if zone_data else default_zone,
        )

    def to_api_format(self) -> dict[str, Any]:
        return {"recordName": self.record_name, "zoneID": self.zone_id.to_api_format()}


def _unwrap_field(value: Any) -> Any:
    """Strip CloudKit's ``{"value": ..., "type": ...}`` wrapper."""
    if isinstance(value, dict) and "value" in value:
        return value["value"]
    return value


def _wrap_field(value: Any) -> dict[str, Any]:
    """Wrap a plain value the way CloudKit expects it in ``fields``."""
    wrapped: dict[str, Any] = {"value": value}
    if isinstance(value, bool):
        wrapped["type"] = "INT64"
        wrapped["value"] = int(value)
    elif isinstance(value, int):
        wrapped["type"] = "INT64"
    elif isinstance(value, float):
        wrapped["type"] = "DOUBLE"
    elif isinstance(value, str):
        wrapped["type"] = "STRING"
    return wrapped


@dataclass
class Record:
    """
    A remote record as stored by the backend.

    Records are handles, not values: saving one updates its change tag and
    creating a share for it sets ``share``, mirroring how a backend record
    object behaves.

    Attributes:
        record_name: Unique name of the record within its zone
        record_type: Schema type (e.g. "Contact")
        zone_id: Zone holding the record
        fields: Plain field values keyed by field name
        change_tag: Server change tag; None means never saved
        share: Reference to the share exposing this record, if any
        parent_record_name: Name of the parent record, if any
        short_guid: Short identifier used in share links (shares only)
        deleted: True for tombstones returned by the change feed
    """

    record_name: str
    record_type: str
    zone_id: ZoneID
    fields: dict[str, Any] = field(default_factory=dict)
    change_tag: str | None = None
    share: ShareReference | None = None
    parent_record_name: str | None = None
    short_guid: str | None = None
    deleted: bool = False

    @classmethod
    def from_api_response(
        cls, data: dict[str, Any], zone_id: ZoneID | None = None
    ) -> Record:
        """
        Create a Record from a CloudKit record dictionary.

        Args:
            data: Record dictionary from a records or changes response
            zone_id: Zone to assume when the record omits ``zoneID``

        Example API response structure::

            {
                'recordName': '6A1F...',
                'recordType': 'Contact',
                'recordChangeTag': 'k2',
                'zoneID': {'zoneName': 'Contacts', 'ownerRecordName': '_abc'},
                'fields': {'name': {'value': 'Jane Doe', 'type': 'STRING'}},
                'share': {'recordName': 'share-1', 'zoneID': {...}}
            }
        """
        zone_data = data.get("zoneID")
        record_zone = (
            ZoneID.from_api_response(zone_data)
            if zone_data
            else (zone_id or ZoneID(zone_name="_defaultZone"))
        )

        share_data = data.get("share")
        parent = data.get("parent") or {}

        return cls(
            record_name=data.get("recordName", ""),
            record_type=data.get("recordType", ""),
            zone_id=record_zone,
            fields={
                key: _unwrap_field(value)
                for key, value in (data.get("fields") or {}).items()
            },
            change_tag=data.get("recordChangeTag"),
            share=(
                ShareReference.from_api_response(share_data, record_zone)
                if share_data
                else None
            ),
            parent_record_name=parent.get("recordName"),
            short_guid=data.get("shortGUID"),
            deleted=bool(data.get("deleted", False)),
        )

    def to_api_format(self) -> dict[str, Any]:
        """
        Convert the record to the CloudKit format used by records/modify.

        Note:
            - ``recordChangeTag`` is only sent once the record has been saved
            - ``zoneID`` is sent per request, not per record
        """
        data: dict[str, Any] = {
            "recordName": self.record_name,
            "recordType": self.record_type,
            "fields": {key: _wrap_field(value) for key, value in self.fields.items()},
        }
        if self.change_tag:
            data["recordChangeTag"] = self.change_tag
        if self.share:
            data["share"] = self.share.to_api_format()
        if self.parent_record_name:
            data["parent"] = {"recordName": self.parent_record_name}
        return data

    def get(self, key: str, default: Any = None) -> Any:
        """Return a field value, like ``record[key]`` on a backend record."""
        return self.fields.get(key, default)

    @property
    def is_saved(self) -> bool:
        return self.change_tag is not None


@dataclass
class Share:
    """
    A share granting other accounts access to one root record.

    Attributes:
        record_name: Name of the share record
        zone_id: Zone holding the share (same as the root record)
        root_record_name: Name of the record being shared
        title: Human-readable title shown to invitees
        short_guid: Short identifier in the share link, set by the server
        change_tag: Server change tag; None until saved
    """

    record_name: str
    zone_id: ZoneID
    root_record_name: str
    title: str | None = None
    short_guid: str | None = None
    change_tag: str | None = None

    @classmethod
    def from_record(cls, record: Record) -> Share:
        """
        Interpret a fetched record as a share.

        Raises:
            ValueError: If the record is not a share record
        """
        if record.record_type != SHARE_RECORD_TYPE:
            raise ValueError(
                f"Record {record.record_name} is a {record.record_type!r}, "
                f"not a share"
            )
        return cls(
            record_name=record.record_name,
            zone_id=record.zone_id,
            root_record_name=record.parent_record_name or "",
            title=record.get(SHARE_TITLE_FIELD),
            short_guid=record.short_guid,
            change_tag=record.change_tag,
        )

    def to_record(self) -> Record:
        fields: dict[str, Any] = {}
        if self.title:
            fields[SHARE_TITLE_FIELD] = self.title
        return Record(
            record_name=self.record_name,
            record_type=SHARE_RECORD_TYPE,
            zone_id=self.zone_id,
            fields=fields,
            change_tag=self.change_tag,
            parent_record_name=self.root_record_name,
            short_guid=self.short_guid,
        )

    def reference(self) -> ShareReference:
        return ShareReference(record_name=self.record_name, zone_id=self.zone_id)

    @property
    def url(self) -> str | None:
        """Sharable link, available once the server assigned a short GUID."""
        if not self.short_guid:
            return None
        return f"{SHARE_URL_BASE}{self.short_guid}"


@dataclass
class ChangePage:
    """One page of a zone change feed."""

    zone_id: ZoneID
    records: list[Record] = field(default_factory=list)
    more_coming: bool = False
    sync_token: str | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> ChangePage:
        """
        Create a ChangePage from one entry of a changes/zone response.

        Example::

            {
                'zoneID': {'zoneName': 'Contacts'},
                'moreComing': True,
                'syncToken': 'AQAAA...',
                'records': [{...}, {...}]
            }
        """
        zone_id = ZoneID.from_api_response(data.get("zoneID") or {})
        return cls(
            zone_id=zone_id,
            records=[
                Record.from_api_response(item, zone_id)
                for item in data.get("records", [])
            ],
            more_coming=bool(data.get("moreComing", False)),
            sync_token=data.get("syncToken"),
        )


@dataclass
class ShareMetadata:
    """
    Description of a share, obtained by resolving its link.

    Attributes:
        container_identifier: Container the share belongs to
        short_guid: Short identifier from the share link
        root_record_name: Name of the shared root record
        zone_id: Owner's zone holding the root record
        owner_name: Display name of the share owner, if known
    """

    container_identifier: str
    short_guid: str
    root_record_name: str | None = None
    zone_id: ZoneID | None = None
    owner_name: str | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> ShareMetadata:
        zone_data = data.get("zoneID")
        names = (data.get("ownerIdentity") or {}).get("nameComponents") or {}
        parts = [p for p in (names.get("givenName"), names.get("familyName")) if p]
        return cls(
            container_identifier=data.get("containerIdentifier", ""),
            short_guid=data.get("shortGUID", ""),
            root_record_name=data.get("rootRecordName"),
            zone_id=ZoneID.from_api_response(zone_data) if zone_data else None,
            owner_name=" ".join(parts) or None,
        )


@dataclass
class AcceptShareResult:
    """Outcome of accepting a single share."""

    metadata: ShareMetadata
    error: CloudKitAPIError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
