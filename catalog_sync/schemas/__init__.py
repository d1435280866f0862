"""
Schema exports for the sync engine.
"""

from .base import BaseSchema
from .credentials import ConnectionTestResult, CredentialField, CredentialSummary, schema_signature
from .feed import ImportResult, NormalizedRow, RowError, normalize_upc
from .sync import SyncRequest, SyncRunRead, SyncRunResult, VendorOffer
