from typing import Optional


class CatalogSyncError(Exception):
    """Base exception for all sync engine errors."""
    pass

# --- Configuration errors: raised before any network I/O ---

class ConfigurationError(CatalogSyncError):
    """Base exception for configuration problems."""
    pass

class UnknownVendorError(ConfigurationError):
    """Raised when no handler is registered for a vendor slug."""

    def __init__(self, vendor_slug: str):
        self.vendor_slug = vendor_slug
        super().__init__(f"Unknown vendor: {vendor_slug!r}")

class CredentialNotFoundError(ConfigurationError):
    """Raised when a tenant has no stored credentials for a vendor."""
    pass

class CredentialRevokedError(ConfigurationError):
    """Raised when stored credentials have been invalidated."""
    pass

class InvalidCredentialSchemaError(ConfigurationError):
    """Raised when a credential field set does not match the vendor schema."""
    pass

class UnsupportedSyncModeError(ConfigurationError):
    """Raised when a vendor has no feed for the requested sync mode."""
    pass

# --- Vendor errors ---

class VendorError(CatalogSyncError):
    """Base exception for upstream vendor failures."""

    def __init__(
        self,
        message: str,
        vendor_slug: Optional[str] = None,
        tenant_id: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        self.vendor_slug = vendor_slug
        self.tenant_id = tenant_id
        self.stage = stage
        super().__init__(message)

class TransientVendorError(VendorError):
    """Raised on timeouts, refused connections and rate limiting. Retryable."""
    pass

class VendorAuthenticationError(VendorError):
    """Raised when the vendor rejects the supplied credentials."""
    pass

class FeedNotFoundError(VendorError):
    """Raised when the expected feed file or endpoint does not exist."""
    pass

class RetryExhaustedError(VendorError):
    """Raised when every retry attempt failed with a transient error."""

    def __init__(self, message: str, attempts: int, last_error: Exception, **kwargs):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(message, **kwargs)

# --- Data errors ---

class DataError(CatalogSyncError):
    """Base exception for data problems."""
    pass

class FeedFormatError(DataError):
    """Raised when a whole feed cannot be parsed."""
    pass

class RowValidationError(DataError):
    """Raised when a single feed row fails validation."""
    pass

class DecryptionFailedError(DataError):
    """Raised when a credential blob fails authentication or is corrupt."""
    pass

# --- Sync state errors ---

class SyncStateError(CatalogSyncError):
    """Base exception for sync state machine errors."""
    pass

class SyncAlreadyRunningError(SyncStateError):
    """Raised when a sync is already in progress for the tenant and vendor."""
    pass

class InvalidTransitionError(SyncStateError):
    """Raised on a status transition outside the allowed table."""
    pass

class SyncCancelledError(CatalogSyncError):
    """Raised when a running sync observes its cancellation signal."""
    pass
