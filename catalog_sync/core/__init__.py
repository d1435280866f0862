"""
Core module exports.
"""
from .enums import (
    DEFAULT_PRIORITY_RANK,
    FeedFormat,
    FeedProtocol,
    SyncMode,
    SyncRunStatus,
    SyncTrigger,
)

from .exceptions import (
    CatalogSyncError,
    ConfigurationError,
    DataError,
    SyncStateError,
    VendorError,
)
