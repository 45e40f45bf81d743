"""
Contact data model for shared contact records.

Provides an immutable Contact representation with methods for:
- Mapping a remote Record to a Contact (dropping incomplete records)
- Building the Record for a newly added contact
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional

from contact_share.api.records import Record, ZoneID

# Record type and field keys of contact records
CONTACT_RECORD_TYPE = "Contact"
NAME_FIELD = "name"
PHONE_NUMBER_FIELD = "phoneNumber"


@dataclass(frozen=True)
class Contact:
    """
    A contact read from the record store.

    Contacts are values: every refresh builds new instances instead of
    mutating existing ones.

    Attributes:
        id: Record name, unique within its zone
        name: Display name
        phone_number: Phone number as entered
        record: Backing record, needed to share or re-save the contact

    Usage:
        contact = Contact.from_record(record)
        if contact is None:
            # record lacked a name or phone number
            ...
    """

    id: str
    name: str
    phone_number: str
    record: Record = field(compare=False, repr=False)

    @classmethod
    def from_record(cls, record: Record) -> Optional["Contact"]:
        """
        Create a Contact from a remote record.

        Args:
            record: Record carrying "name" and "phoneNumber" fields

        Returns:
            Contact instance, or None if a required field is missing or not a string
        """
        name = record.get(NAME_FIELD)
        phone_number = record.get(PHONE_NUMBER_FIELD)
        if not isinstance(name, str) or not isinstance(phone_number, str):
            return None

        return cls(
            id=record.record_name,
            name=name,
            phone_number=phone_number,
            record=record,
        )

    @property
    def is_shared(self) -> bool:
        """True once the backing record references a share."""
        return self.record.share is not None


def new_contact_record(name: str, phone_number: str, zone_id: ZoneID) -> Record:
    """
    Build an unsaved record for a new contact with a fresh identifier.

    Args:
        name: Display name
        phone_number: Phone number
        zone_id: Zone the record will live in

    Returns:
        Record ready to be saved
    """
    return Record(
        record_name=str(uuid.uuid4()),
        record_type=CONTACT_RECORD_TYPE,
        zone_id=zone_id,
        fields={NAME_FIELD: name, PHONE_NUMBER_FIELD: phone_number},
    )
