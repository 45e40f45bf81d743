"""
contact_share.storage - Local state persistence
"""

from contact_share.storage.db import SyncDatabase

__all__ = ["SyncDatabase"]
