"""
contact_share.auth - CloudKit token management
"""

from contact_share.auth.cloudkit_auth import (
    AuthenticationError,
    CloudKitAuth,
    CloudKitCredentials,
)

__all__ = ["AuthenticationError", "CloudKitAuth", "CloudKitCredentials"]
