"""
SOAP/XML feed retrieval.

The request envelope is a per-vendor template. Credential values and the
``since`` date are XML-escaped and substituted by name, e.g. ``{username}``.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional
from xml.parsers.expat import ExpatError
from xml.sax.saxutils import escape

import xmltodict

from catalog_sync.core.enums import FeedProtocol
from catalog_sync.core.exceptions import VendorAuthenticationError, VendorError
from catalog_sync.core.utils import lookup_path
from catalog_sync.schemas.credentials import ConnectionTestResult
from catalog_sync.services.feed_parser import strip_namespaces
from catalog_sync.services.vendors.base import FeedPayload
from catalog_sync.services.vendors.http import HTTPVendorHandler

logger = logging.getLogger(__name__)

_AUTH_FAULT_WORDS = ("auth", "login", "password", "credential", "denied")


class _TemplateValues(dict):
    def __missing__(self, key):
        return ""


class SOAPHandler(HTTPVendorHandler):
    protocol = FeedProtocol.SOAP

    def _envelope(self, credentials: Dict[str, Any], since: Optional[datetime]) -> bytes:
        since_format = self.feed_options.get("since_format", "%m/%d/%Y")
        values = _TemplateValues((name, escape(str(value))) for name, value in credentials.items())
        values["since"] = escape(since.strftime(since_format) if since else self.feed_options.get("full_since", ""))
        return self.feed_options["envelope"].format_map(values).encode("utf-8")

    def _raise_for_fault(self, body: bytes) -> None:
        """SOAP faults usually arrive as HTTP 500; classify them before the status code."""
        try:
            document = strip_namespaces(xmltodict.parse(body))
        except ExpatError:
            return
        fault = lookup_path(document, "Envelope.Body.Fault")
        if not fault:
            return
        fault_text = str(lookup_path(fault, "faultstring") or fault)
        message = f"{self.name} SOAP fault: {fault_text[:200]}"
        if any(word in fault_text.lower() for word in _AUTH_FAULT_WORDS):
            raise VendorAuthenticationError(message, vendor_slug=self.slug)
        raise VendorError(message, vendor_slug=self.slug)

    async def _call(self, credentials: Dict[str, Any], since: Optional[datetime]) -> bytes:
        headers = {
            "Content-Type": "text/xml; charset=utf-8",
            "SOAPAction": f'"{self.feed_options["soap_action"]}"',
        }
        async with self._client() as client:
            response = await self._make_request(
                client,
                "POST",
                self.base_url,
                headers=headers,
                content=self._envelope(credentials, since),
                check_status=False,
            )
        self._raise_for_fault(response.content)
        self._check_status(response)
        return response.content

    async def fetch_feed(self, credentials: Dict[str, Any], since: Optional[datetime] = None) -> FeedPayload:
        data = await self._call(credentials, since)
        logger.info(f"Fetched {len(data)} bytes from {self.name} SOAP service")
        return FeedPayload(
            data=data,
            format=self.feed_format,
            is_complete=since is None,
            source=self.base_url,
        )

    async def test_connection(self, credentials: Dict[str, Any]) -> ConnectionTestResult:
        # an incremental pull for today is the cheapest authenticated call
        try:
            await self._call(credentials, datetime.now())
        except VendorAuthenticationError as e:
            return self._failed(f"Authentication rejected: {e}")
        except VendorError as e:
            return self._failed(str(e))
        return ConnectionTestResult(success=True, message=f"Connected to {self.name} web service")
