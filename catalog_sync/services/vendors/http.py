"""
httpx plumbing shared by the REST and SOAP handlers.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from catalog_sync.core.exceptions import (
    FeedNotFoundError,
    TransientVendorError,
    VendorAuthenticationError,
    VendorError,
)
from catalog_sync.services.vendors.base import VendorHandler

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}
AUTH_STATUS_CODES = {401, 403}


class HTTPVendorHandler(VendorHandler):
    """Base for vendors reached over HTTP. ``transport`` is injectable for tests."""

    def __init__(self, spec, timeout: float = 60.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(spec, timeout=timeout)
        self.transport = transport

    @property
    def base_url(self) -> str:
        return self.feed_options["base_url"].rstrip("/")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    def _check_status(self, response: httpx.Response) -> None:
        if response.status_code < 400:
            return
        message = f"{self.name} returned HTTP {response.status_code}: {response.text[:200]}"
        if response.status_code in AUTH_STATUS_CODES:
            raise VendorAuthenticationError(message, vendor_slug=self.slug)
        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientVendorError(message, vendor_slug=self.slug)
        if response.status_code == 404:
            raise FeedNotFoundError(message, vendor_slug=self.slug)
        raise VendorError(message, vendor_slug=self.slug)

    async def _make_request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        content: Optional[bytes] = None,
        auth: Optional[httpx.Auth] = None,
        check_status: bool = True,
    ) -> httpx.Response:
        """
        Make a request to the vendor API

        Raises:
            TransientVendorError: timeouts, network failures, 429 and 5xx
            VendorAuthenticationError: 401 and 403
            VendorError: any other unexpected status
        """
        logger.debug(f"Making {method} request to {url}")
        if params:
            logger.debug(f"Params: {params}")

        try:
            response = await client.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json,
                content=content,
                auth=auth,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Timeout error: {str(e)}")
            raise TransientVendorError(f"{self.name} request timed out: {e}", vendor_slug=self.slug)
        except httpx.RequestError as e:
            logger.error(f"Network error: {str(e)}")
            raise TransientVendorError(f"{self.name} network error: {e}", vendor_slug=self.slug)

        if check_status:
            self._check_status(response)
        return response
