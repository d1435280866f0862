"""
REST/JSON feed retrieval.

Feed options:
    base_url, feed_path
    auth: {"type": "basic" | "bearer" | "header" | "login", ...}
    pagination: {"page_param", "per_page_param", "per_page", "items_key",
                 "page_count_key", "max_pages"}   (omit for bulk endpoints)
    items_key: key holding the record list on bulk endpoints
    since_param, since_format: incremental pulls
    test_path: endpoint for connection tests (defaults to feed_path)
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx

from catalog_sync.core.enums import FeedProtocol
from catalog_sync.core.exceptions import FeedFormatError, VendorAuthenticationError, VendorError
from catalog_sync.core.utils import lookup_path
from catalog_sync.schemas.credentials import ConnectionTestResult
from catalog_sync.services.vendors.base import FeedPayload
from catalog_sync.services.vendors.http import HTTPVendorHandler

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGES = 1000


class RESTHandler(HTTPVendorHandler):
    protocol = FeedProtocol.REST

    @property
    def record_path(self) -> Optional[str]:
        # pages are flattened into one JSON array before parsing
        return None

    async def _authenticate(
        self, client: httpx.AsyncClient, credentials: Dict[str, Any]
    ) -> Tuple[Dict[str, str], Optional[httpx.Auth]]:
        """Return (headers, auth) for subsequent requests"""
        auth = self.feed_options.get("auth") or {}
        auth_type = auth.get("type", "basic")
        headers = {"Accept": "application/json"}

        if auth_type == "basic":
            return headers, httpx.BasicAuth(
                str(credentials[auth.get("username_field", "username")]),
                str(credentials[auth.get("password_field", "password")]),
            )
        if auth_type == "bearer":
            headers["Authorization"] = f"Bearer {credentials[auth.get('token_field', 'api_key')]}"
            return headers, None
        if auth_type == "header":
            headers[auth["header"]] = str(credentials[auth.get("field", "api_key")])
            return headers, None
        if auth_type == "login":
            response = await self._make_request(
                client,
                "POST",
                f"{self.base_url}/{auth['path'].lstrip('/')}",
                headers=headers,
                json={
                    auth.get("username_key", "Email"): credentials[auth.get("username_field", "email")],
                    auth.get("password_key", "Password"): credentials[auth.get("password_field", "password")],
                },
            )
            token = lookup_path(self._json(response), auth.get("token_key", "token"))
            if not token:
                raise VendorAuthenticationError(f"{self.name} login did not return a token", vendor_slug=self.slug)
            headers[auth.get("header", "Token")] = str(token)
            return headers, None
        raise VendorError(f"Unsupported auth type {auth_type!r} for {self.name}", vendor_slug=self.slug)

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise FeedFormatError(f"{self.name} returned invalid JSON: {e}")

    def _items(self, body: Any, items_key: Optional[str]) -> List[Any]:
        items = lookup_path(body, items_key) if items_key else body
        if items is None:
            return []
        if isinstance(items, dict):
            return [items]
        if not isinstance(items, list):
            raise FeedFormatError(f"{self.name} response field {items_key!r} is not a list")
        return items

    def _since_params(self, since: Optional[datetime]) -> Dict[str, str]:
        param = self.feed_options.get("since_param")
        if since is None or not param:
            return {}
        return {param: since.strftime(self.feed_options.get("since_format", "%Y-%m-%dT%H:%M:%S"))}

    async def fetch_feed(self, credentials: Dict[str, Any], since: Optional[datetime] = None) -> FeedPayload:
        url = f"{self.base_url}/{self.feed_options['feed_path'].lstrip('/')}"
        params = self._since_params(since)
        pagination = self.feed_options.get("pagination")

        async with self._client() as client:
            headers, auth = await self._authenticate(client, credentials)

            if not pagination:
                response = await self._make_request(client, "GET", url, headers=headers, params=params or None, auth=auth)
                records = self._items(self._json(response), self.feed_options.get("items_key"))
            else:
                records = await self._fetch_pages(client, url, headers, auth, params, pagination)

        logger.info(f"Fetched {len(records)} records from {self.name} REST API")
        return FeedPayload(
            data=json.dumps(records).encode("utf-8"),
            format=self.feed_format,
            is_complete=not params,
            source=url,
        )

    async def _fetch_pages(self, client, url, headers, auth, params, pagination) -> List[Any]:
        per_page = pagination.get("per_page", 100)
        max_pages = pagination.get("max_pages", DEFAULT_MAX_PAGES)
        records: List[Any] = []

        for page in range(1, max_pages + 1):
            page_params = {
                **params,
                pagination.get("page_param", "page"): page,
                pagination.get("per_page_param", "per_page"): per_page,
            }
            response = await self._make_request(client, "GET", url, headers=headers, params=page_params, auth=auth)
            body = self._json(response)
            items = self._items(body, pagination.get("items_key"))
            records.extend(items)
            logger.debug(f"{self.name} page {page}: {len(items)} records")

            page_count = lookup_path(body, pagination["page_count_key"]) if pagination.get("page_count_key") else None
            if not items or len(items) < per_page:
                break
            if page_count is not None and page >= int(page_count):
                break
        else:
            logger.warning(f"{self.name} pagination stopped at the {max_pages} page limit")

        return records

    async def test_connection(self, credentials: Dict[str, Any]) -> ConnectionTestResult:
        path = self.feed_options.get("test_path") or self.feed_options["feed_path"]
        pagination = self.feed_options.get("pagination") or {}
        params = {pagination["per_page_param"]: 1} if pagination.get("per_page_param") else None
        try:
            async with self._client() as client:
                headers, auth = await self._authenticate(client, credentials)
                await self._make_request(
                    client, "GET", f"{self.base_url}/{path.lstrip('/')}", headers=headers, params=params, auth=auth
                )
        except VendorAuthenticationError as e:
            return self._failed(f"Authentication rejected: {e}")
        except (VendorError, FeedFormatError) as e:
            return self._failed(str(e))
        return ConnectionTestResult(success=True, message=f"Connected to {self.name} API")
