from .vendor import VendorDefinition
from .credential import TenantVendorCredential
from .sync_run import SyncRun
from .feed_state import VendorFeedState
from .master_product import MasterProduct, MERGED_FIELDS
from .vendor_product import VendorProductMapping

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'VendorDefinition',
    'TenantVendorCredential',
    'SyncRun',
    'VendorFeedState',
    'MasterProduct',
    'MERGED_FIELDS',
    'VendorProductMapping',
]
