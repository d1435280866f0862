"""
Vendor slug to handler lookup.

Populated once at process start from the explicit vendor table; lookups
afterwards are read-only.
"""

import logging
from typing import Dict, Iterator, List

from catalog_sync.core.exceptions import UnknownVendorError
from catalog_sync.services.vendors.base import VendorHandler

logger = logging.getLogger(__name__)


class VendorHandlerRegistry:
    def __init__(self):
        self._handlers: Dict[str, VendorHandler] = {}

    def register(self, slug: str, handler: VendorHandler) -> None:
        if slug in self._handlers:
            raise ValueError(f"Vendor {slug!r} is already registered")
        if handler.slug != slug:
            raise ValueError(f"Handler for {handler.slug!r} cannot be registered as {slug!r}")
        self._handlers[slug] = handler
        logger.info(f"Registered {handler.protocol.value} handler for vendor {slug}")

    def get_handler(self, slug: str) -> VendorHandler:
        try:
            return self._handlers[slug]
        except KeyError:
            raise UnknownVendorError(slug)

    def slugs(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, slug: object) -> bool:
        return slug in self._handlers

    def __iter__(self) -> Iterator[VendorHandler]:
        return iter(self._handlers[slug] for slug in self.slugs())

    def __len__(self) -> int:
        return len(self._handlers)
