"""
contact_share.api - Record store access

Contains the record-level data model, the RecordStore interface and the
CloudKit Web Services implementation.
"""

from contact_share.api.cloudkit_api import (
    AuthenticationRequiredError,
    CloudKitAPI,
    CloudKitAPIError,
    RateLimitError,
    RecordNotFoundError,
)
from contact_share.api.records import (
    AcceptShareResult,
    ChangePage,
    DatabaseScope,
    Record,
    SavePolicy,
    Share,
    ShareMetadata,
    ShareReference,
    ZoneID,
)
from contact_share.api.store import FlagStore, RecordStore

__all__ = [
    "AcceptShareResult",
    "AuthenticationRequiredError",
    "ChangePage",
    "CloudKitAPI",
    "CloudKitAPIError",
    "DatabaseScope",
    "FlagStore",
    "RateLimitError",
    "Record",
    "RecordNotFoundError",
    "RecordStore",
    "SavePolicy",
    "Share",
    "ShareMetadata",
    "ShareReference",
    "ZoneID",
]
