"""
FTP feed retrieval.

ftplib is blocking, so every FTP session runs in the default executor.
"""

import asyncio
import ftplib
import functools
import io
import logging
import posixpath
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from catalog_sync.core.enums import FeedProtocol
from catalog_sync.core.exceptions import (
    FeedNotFoundError,
    TransientVendorError,
    VendorAuthenticationError,
    VendorError,
)
from catalog_sync.schemas.credentials import ConnectionTestResult
from catalog_sync.services.vendors.base import FeedPayload, VendorHandler

logger = logging.getLogger(__name__)

DEFAULT_FTP_PORT = 21


class FTPHandler(VendorHandler):
    """
    Downloads one fixed-path CSV from the vendor's FTP server.

    Credentials: ``host``, ``username``, ``password`` and optionally ``port``
    and ``base_path`` (overrides the vendor default directory).
    Feed options: ``base_path``, ``file_name``. An ``inventory_feed`` names a
    second file in the same directory.
    """
    protocol = FeedProtocol.FTP

    def __init__(self, spec, timeout: float = 10.0, ftp_factory: Callable[[], ftplib.FTP] = ftplib.FTP):
        super().__init__(spec, timeout=timeout)
        self.ftp_factory = ftp_factory

    @property
    def file_name(self) -> str:
        return self.feed_options["file_name"]

    def _base_path(self, credentials: Dict[str, Any]) -> str:
        return credentials.get("base_path") or self.feed_options.get("base_path") or "/"

    def _translate(self, exc: Exception, action: str) -> VendorError:
        message = f"{self.name} FTP {action} failed: {exc}"
        if isinstance(exc, ftplib.error_perm):
            code = str(exc)[:3]
            if code == "530":
                return VendorAuthenticationError(message, vendor_slug=self.slug)
            if code == "550":
                return FeedNotFoundError(message, vendor_slug=self.slug)
            return VendorError(message, vendor_slug=self.slug)
        # error_temp, timeouts, refused connections, dropped sessions
        return TransientVendorError(message, vendor_slug=self.slug)

    def _open(self, credentials: Dict[str, Any]) -> ftplib.FTP:
        ftp = self.ftp_factory()
        try:
            ftp.connect(
                credentials["host"],
                int(credentials.get("port") or DEFAULT_FTP_PORT),
                timeout=self.timeout,
            )
        except ftplib.all_errors as e:
            raise self._translate(e, f"connect to {credentials['host']}")
        try:
            ftp.login(credentials["username"], credentials["password"])
        except ftplib.all_errors as e:
            self._close(ftp)
            raise self._translate(e, "login")
        return ftp

    def _close(self, ftp: ftplib.FTP) -> None:
        try:
            ftp.quit()
        except ftplib.all_errors as e:
            logger.debug(f"FTP quit failed ({e}); closing socket")
            ftp.close()

    def _download(self, credentials: Dict[str, Any], file_name: str) -> bytes:
        ftp = self._open(credentials)
        base_path = self._base_path(credentials)
        try:
            ftp.cwd(base_path)
            names = {posixpath.basename(name) for name in ftp.nlst()}
            if file_name not in names:
                raise FeedNotFoundError(
                    f"{self.name} feed {posixpath.join(base_path, file_name)} not found on FTP server",
                    vendor_slug=self.slug,
                )
            buffer = io.BytesIO()
            ftp.retrbinary(f"RETR {file_name}", buffer.write)
            return buffer.getvalue()
        except ftplib.all_errors as e:
            raise self._translate(e, f"download of {file_name}")
        finally:
            self._close(ftp)

    async def _fetch(self, credentials: Dict[str, Any], file_name: str) -> bytes:
        loop = asyncio.get_running_loop()
        logger.info(f"Downloading {file_name} from {self.name} FTP")
        data = await loop.run_in_executor(None, functools.partial(self._download, credentials, file_name))
        logger.info(f"Downloaded {len(data)} bytes from {self.name} FTP")
        return data

    async def fetch_feed(self, credentials: Dict[str, Any], since: Optional[datetime] = None) -> FeedPayload:
        # the FTP feed is always the full catalog, ``since`` is ignored
        data = await self._fetch(credentials, self.file_name)
        return FeedPayload(
            data=data,
            format=self.feed_format,
            is_complete=True,
            source=posixpath.join(self._base_path(credentials), self.file_name),
        )

    async def fetch_inventory_feed(self, credentials: Dict[str, Any]) -> FeedPayload:
        if not self.supports_inventory:
            return await super().fetch_inventory_feed(credentials)
        inventory = self.spec.inventory_feed
        file_name = inventory.feed_options["file_name"]
        data = await self._fetch(credentials, file_name)
        return FeedPayload(
            data=data,
            format=inventory.feed_format,
            is_complete=False,
            source=posixpath.join(self._base_path(credentials), file_name),
        )

    def _probe(self, credentials: Dict[str, Any]) -> str:
        ftp = self._open(credentials)
        base_path = self._base_path(credentials)
        try:
            ftp.pwd()
            ftp.cwd(base_path)
            return f"Connected to {credentials['host']} and opened {base_path}"
        except ftplib.all_errors as e:
            raise self._translate(e, f"change to {base_path}")
        finally:
            self._close(ftp)

    async def test_connection(self, credentials: Dict[str, Any]) -> ConnectionTestResult:
        loop = asyncio.get_running_loop()
        try:
            message = await loop.run_in_executor(None, functools.partial(self._probe, credentials))
        except VendorError as e:
            return self._failed(str(e))
        return ConnectionTestResult(success=True, message=message)
