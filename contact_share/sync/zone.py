"""
One-time provisioning of the custom record zone.

Sharing requires records to live in a custom zone, so the zone has to
exist before the first read or write.
"""

import logging

from contact_share.api.records import ZoneID
from contact_share.api.store import FlagStore, RecordStore

# Default name of the managed zone
DEFAULT_ZONE_NAME = "Contacts"

# Flag marking that the zone was created on this installation
ZONE_CREATED_FLAG = "isZoneCreated"

logger = logging.getLogger(__name__)


class ZoneProvisioner:
    """
    Creates the managed zone once per installation.

    The outcome is remembered in the flag store, so later calls return
    without contacting the backend. Calls are expected to be serialized;
    there is no guard against two first-run callers racing.

    Usage:
        provisioner = ZoneProvisioner(api, db)
        provisioner.ensure_zone()
    """

    def __init__(
        self,
        store: RecordStore,
        flags: FlagStore,
        zone_id: ZoneID | None = None,
    ):
        self.store = store
        self.flags = flags
        self.zone_id = zone_id or ZoneID(zone_name=DEFAULT_ZONE_NAME)

    @property
    def is_provisioned(self) -> bool:
        return self.flags.get_flag(ZONE_CREATED_FLAG)

    def ensure_zone(self) -> None:
        """
        Create the zone unless it was already created.

        Raises:
            CloudKitAPIError: If creation fails; the flag stays unset so the
                next call retries
        """
        if self.is_provisioned:
            logger.debug(f"Zone {self.zone_id} already provisioned")
            return

        try:
            self.store.create_zone(self.zone_id)
        except Exception as e:
            logger.error(f"Failed to create custom zone {self.zone_id}: {e}")
            raise

        self.flags.set_flag(ZONE_CREATED_FLAG, True)
        logger.info(f"Provisioned zone {self.zone_id}")
