"""
contact_share - Sync and share contacts through CloudKit Web Services.

Keeps a private contact list in a custom record zone, reads contacts that
other accounts have shared, and creates share links for single contacts.
"""

__version__ = "0.1.0"
