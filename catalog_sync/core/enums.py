"""
Shared enums and constants used across the sync engine.
"""

from enum import Enum


DEFAULT_PRIORITY_RANK = 999


class FeedProtocol(str, Enum):
    FTP = "ftp"
    REST = "rest"
    SOAP = "soap"


class FeedFormat(str, Enum):
    CSV = "csv"
    XML = "xml"
    JSON = "json"


class CredentialFieldType(str, Enum):
    """Value types a vendor credential field may declare"""
    TEXT = "text"
    PASSWORD = "password"
    EMAIL = "email"
    URL = "url"
    NUMBER = "number"
    API_KEY = "api_key"
    SECRET = "secret"
    TOKEN = "token"

    @property
    def is_secret(self) -> bool:
        return self in (
            CredentialFieldType.PASSWORD,
            CredentialFieldType.API_KEY,
            CredentialFieldType.SECRET,
            CredentialFieldType.TOKEN,
        )


class CredentialStatus(str, Enum):
    ACTIVE = "active"
    REVOKED = "revoked"


class ConnectionStatus(str, Enum):
    UNTESTED = "untested"
    OK = "ok"
    FAILED = "failed"


class SyncRunStatus(str, Enum):
    """Sync status values for a (tenant, vendor) pair"""
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    ERROR = "error"
    REJECTED = "rejected"   # result-only, never persisted


class SyncMode(str, Enum):
    INCREMENTAL = "incremental"
    FULL = "full"
    FORCED = "forced"
    INVENTORY = "inventory"   # stock/price-only feed, never touches catalog data

    @property
    def is_catalog(self) -> bool:
        return self != SyncMode.INVENTORY


class SyncTrigger(str, Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"


class SyncStage(str, Enum):
    CREDENTIALS = "credentials"
    FETCH = "fetch"
    CHANGE_DETECTION = "change-detection"
    IMPORT = "import"
    MERGE = "merge"
    FINALIZE = "finalize"
