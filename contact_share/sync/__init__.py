"""
contact_share.sync - Contact synchronization and sharing

Contains the contact mapper, zone provisioning, change fetching, the sync
engine owning the application state, and share handling.
"""

from contact_share.sync.contact import Contact, new_contact_record
from contact_share.sync.engine import SyncEngine
from contact_share.sync.fetcher import ChangeFetcher
from contact_share.sync.sharing import (
    InvalidRemoteShareError,
    ShareContainerMismatchError,
    ShareError,
    ShareResolver,
    short_guid_from_link,
)
from contact_share.sync.state import AppState, Error, Loaded, Loading
from contact_share.sync.zone import ZoneProvisioner

__all__ = [
    "AppState",
    "ChangeFetcher",
    "Contact",
    "Error",
    "InvalidRemoteShareError",
    "Loaded",
    "Loading",
    "ShareContainerMismatchError",
    "ShareError",
    "ShareResolver",
    "SyncEngine",
    "ZoneProvisioner",
    "new_contact_record",
    "short_guid_from_link",
]
