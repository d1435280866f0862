"""
Startup wiring: build the handler registry from the vendor table and make
sure every registered vendor has a ``VendorDefinition`` row.
"""

import logging
from typing import Dict, Iterable, Optional, Type

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.config import Settings, get_settings
from catalog_sync.core.enums import FeedProtocol
from catalog_sync.models.vendor import VendorDefinition
from catalog_sync.services.vendors.base import VendorHandler, VendorSpec
from catalog_sync.services.vendors.definitions import DEFAULT_VENDORS
from catalog_sync.services.vendors.ftp import FTPHandler
from catalog_sync.services.vendors.registry import VendorHandlerRegistry
from catalog_sync.services.vendors.rest import RESTHandler
from catalog_sync.services.vendors.soap import SOAPHandler

logger = logging.getLogger(__name__)

HANDLER_CLASSES: Dict[FeedProtocol, Type[VendorHandler]] = {
    FeedProtocol.FTP: FTPHandler,
    FeedProtocol.REST: RESTHandler,
    FeedProtocol.SOAP: SOAPHandler,
}


def build_handler(spec: VendorSpec, settings: Optional[Settings] = None) -> VendorHandler:
    settings = settings or get_settings()
    handler_class = HANDLER_CLASSES[spec.protocol]
    timeout = settings.FTP_TIMEOUT if spec.protocol == FeedProtocol.FTP else settings.VENDOR_HTTP_TIMEOUT
    return handler_class(spec, timeout=timeout)


def build_registry(
    specs: Iterable[VendorSpec] = DEFAULT_VENDORS,
    settings: Optional[Settings] = None,
) -> VendorHandlerRegistry:
    registry = VendorHandlerRegistry()
    for spec in specs:
        registry.register(spec.slug, build_handler(spec, settings))
    logger.info(f"Vendor registry ready: {', '.join(registry.slugs())}")
    return registry


async def seed_vendor_definitions(db: AsyncSession, registry: VendorHandlerRegistry) -> int:
    """
    Create or refresh a ``VendorDefinition`` per registered handler.

    Existing rows keep their operator-tuned ``priority_rank`` and
    ``stale_after_hours``; only descriptive fields and the credential schema
    are refreshed. Returns the number of rows created.
    """
    result = await db.execute(select(VendorDefinition))
    existing = {definition.slug: definition for definition in result.scalars()}
    created = 0

    for handler in registry:
        spec = handler.spec
        credential_fields = [field.model_dump(mode="json") for field in spec.credential_fields]
        definition = existing.get(spec.slug)
        if definition is None:
            db.add(VendorDefinition(
                slug=spec.slug,
                name=spec.name,
                protocol=spec.protocol.value,
                feed_format=spec.feed_format.value,
                credential_fields=credential_fields,
                priority_rank=spec.priority_rank,
                stale_after_hours=spec.stale_after_hours,
                is_active=True,
            ))
            created += 1
            continue

        definition.name = spec.name
        definition.protocol = spec.protocol.value
        definition.feed_format = spec.feed_format.value
        definition.credential_fields = credential_fields

    await db.commit()
    logger.info(f"Vendor definitions seeded: {created} created, {len(existing)} already present")
    return created
