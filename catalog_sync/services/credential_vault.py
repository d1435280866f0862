# catalog_sync/services/credential_vault.py
"""
Per-tenant, per-vendor credential storage encrypted at rest.

Blobs are AES-256-GCM encrypted with a fresh 96-bit nonce for every write.
The key is derived once per process from ``CREDENTIAL_ROOT_SECRET`` with
scrypt and a fixed salt. The stored value is::

    base64(version || nonce || ciphertext || tag)

and ``"<tenant>:<vendor>"`` is bound as associated data, so a blob moved to
another pair no longer authenticates. Any verification failure raises
``DecryptionFailedError``; partial plaintext is never returned.
"""

import base64
import binascii
import json
import logging
import os
import re
from functools import lru_cache
from typing import Dict, List, Optional
from urllib.parse import urlparse

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.config import Settings, get_settings
from catalog_sync.core.enums import ConnectionStatus, CredentialFieldType, CredentialStatus
from catalog_sync.core.exceptions import (
    ConfigurationError,
    CredentialNotFoundError,
    CredentialRevokedError,
    DecryptionFailedError,
    InvalidCredentialSchemaError,
    UnknownVendorError,
)
from catalog_sync.core.utils import mask_secret, utcnow
from catalog_sync.models.credential import TenantVendorCredential
from catalog_sync.models.vendor import VendorDefinition
from catalog_sync.schemas.credentials import (
    ConnectionTestResult,
    CredentialField,
    CredentialSummary,
    schema_signature,
)

logger = logging.getLogger(__name__)

BLOB_VERSION = 1
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_URL_SCHEMES = {"http", "https", "ftp", "ftps", "sftp"}


@lru_cache(maxsize=4)
def derive_key(root_secret: str, salt: str, n: int) -> bytes:
    """Derive the vault key. Cached: scrypt is deliberately slow."""
    if not root_secret:
        raise ConfigurationError("CREDENTIAL_ROOT_SECRET is not configured")
    kdf = Scrypt(salt=salt.encode("utf-8"), length=KEY_SIZE, n=n, r=8, p=1)
    return kdf.derive(root_secret.encode("utf-8"))


def _associated_data(tenant_id: str, vendor_slug: str) -> bytes:
    return f"{tenant_id}:{vendor_slug}".encode("utf-8")


def encrypt_fields(key: bytes, tenant_id: str, vendor_slug: str, fields: Dict[str, object]) -> str:
    nonce = os.urandom(NONCE_SIZE)
    plaintext = json.dumps(fields, sort_keys=True).encode("utf-8")
    sealed = AESGCM(key).encrypt(nonce, plaintext, _associated_data(tenant_id, vendor_slug))
    return base64.b64encode(bytes([BLOB_VERSION]) + nonce + sealed).decode("ascii")


def decrypt_fields(key: bytes, tenant_id: str, vendor_slug: str, blob: str) -> Dict[str, object]:
    try:
        raw = base64.b64decode(blob.encode("ascii"), validate=True)
    except (binascii.Error, ValueError, UnicodeEncodeError):
        raise DecryptionFailedError(f"Credential blob for {tenant_id}/{vendor_slug} is not valid base64")

    if len(raw) < 1 + NONCE_SIZE + TAG_SIZE:
        raise DecryptionFailedError(f"Credential blob for {tenant_id}/{vendor_slug} is truncated")
    if raw[0] != BLOB_VERSION:
        raise DecryptionFailedError(f"Unsupported credential blob version {raw[0]}")

    nonce, sealed = raw[1:1 + NONCE_SIZE], raw[1 + NONCE_SIZE:]
    try:
        plaintext = AESGCM(key).decrypt(nonce, sealed, _associated_data(tenant_id, vendor_slug))
    except InvalidTag:
        raise DecryptionFailedError(
            f"Credential blob for {tenant_id}/{vendor_slug} failed authentication (tampered or corrupt)"
        )

    try:
        fields = json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise DecryptionFailedError(f"Credential blob for {tenant_id}/{vendor_slug} holds invalid data")
    if not isinstance(fields, dict):
        raise DecryptionFailedError(f"Credential blob for {tenant_id}/{vendor_slug} holds invalid data")
    return fields


def validate_credential_fields(
    vendor_slug: str,
    schema: List[CredentialField],
    fields: Dict[str, object],
) -> Dict[str, object]:
    """
    Check a plaintext field set against a vendor schema.

    Returns the field set exactly as given. Values are never rewritten, so
    what is stored is what ``retrieve`` hands back.

    Raises:
        InvalidCredentialSchemaError: unknown field, missing required field,
            or a value that does not match its declared type.
    """
    if not isinstance(fields, dict):
        raise InvalidCredentialSchemaError(f"Credentials for {vendor_slug} must be a mapping of field names to values")

    by_name = {field.name: field for field in schema}
    unknown = sorted(set(fields) - set(by_name))
    if unknown:
        raise InvalidCredentialSchemaError(
            f"Unknown credential field(s) for {vendor_slug}: {', '.join(unknown)}"
        )

    problems: List[str] = []
    for field in schema:
        value = fields.get(field.name)
        if value is None or (isinstance(value, str) and not value.strip()):
            if field.required:
                problems.append(f"{field.label} is required")
            continue
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            problems.append(f"{field.label} must be a string or number")
            continue

        text = str(value).strip()
        if field.type == CredentialFieldType.NUMBER:
            try:
                float(text)
            except ValueError:
                problems.append(f"{field.label} must be a number")
        elif field.type == CredentialFieldType.EMAIL and not _EMAIL_RE.match(text):
            problems.append(f"{field.label} must be a valid email address")
        elif field.type == CredentialFieldType.URL:
            parsed = urlparse(text)
            if parsed.scheme not in _URL_SCHEMES or not parsed.netloc:
                problems.append(f"{field.label} must be a valid URL")

    if problems:
        raise InvalidCredentialSchemaError(f"Invalid credentials for {vendor_slug}: {'; '.join(problems)}")
    return dict(fields)


class CredentialVault:
    """
    Encrypted credential store for (tenant, vendor) pairs.

    Schemas come from the handler registry when one is supplied, otherwise
    from the stored ``VendorDefinition``.
    """

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None, registry=None):
        self.db = db
        self.settings = settings or get_settings()
        self.registry = registry

    @property
    def _key(self) -> bytes:
        return derive_key(
            self.settings.CREDENTIAL_ROOT_SECRET,
            self.settings.CREDENTIAL_KDF_SALT,
            self.settings.CREDENTIAL_KDF_N,
        )

    async def _schema_for(self, vendor_slug: str) -> List[CredentialField]:
        if self.registry is not None:
            return list(self.registry.get_handler(vendor_slug).credential_fields)

        definition = await self.db.scalar(
            select(VendorDefinition).where(VendorDefinition.slug == vendor_slug)
        )
        if definition is None:
            raise UnknownVendorError(vendor_slug)
        return [CredentialField.model_validate(entry) for entry in (definition.credential_fields or [])]

    async def _load_credential(self, tenant_id: str, vendor_slug: str) -> Optional[TenantVendorCredential]:
        return await self.db.scalar(
            select(TenantVendorCredential).where(
                TenantVendorCredential.tenant_id == tenant_id,
                TenantVendorCredential.vendor_slug == vendor_slug,
            )
        )

    async def store(self, tenant_id: str, vendor_slug: str, fields: Dict[str, object]) -> TenantVendorCredential:
        """Validate, encrypt and upsert a full credential set. Reactivates revoked credentials."""
        schema = await self._schema_for(vendor_slug)
        validated = validate_credential_fields(vendor_slug, schema, fields)
        blob = encrypt_fields(self._key, tenant_id, vendor_slug, validated)

        credential = await self._load_credential(tenant_id, vendor_slug)
        if credential is None:
            credential = TenantVendorCredential(tenant_id=tenant_id, vendor_slug=vendor_slug)
            self.db.add(credential)

        credential.encrypted_blob = blob
        credential.status = CredentialStatus.ACTIVE.value
        credential.revoked_reason = None
        credential.connection_status = ConnectionStatus.UNTESTED.value
        credential.connection_message = None
        credential.updated_at = utcnow()
        await self.db.commit()

        logger.info(f"Stored credentials for tenant {tenant_id} vendor {vendor_slug} ({len(validated)} fields)")
        return credential

    async def update(self, tenant_id: str, vendor_slug: str, fields: Dict[str, object]) -> TenantVendorCredential:
        """
        Partial update: merge ``fields`` over the stored plaintext, then
        validate the merged set. A ``None`` value removes an optional field.
        """
        credential = await self._load_credential(tenant_id, vendor_slug)
        if credential is None:
            return await self.store(tenant_id, vendor_slug, fields)

        existing = decrypt_fields(self._key, tenant_id, vendor_slug, credential.encrypted_blob)
        merged = {**existing, **fields}
        merged = {name: value for name, value in merged.items() if value is not None}
        return await self.store(tenant_id, vendor_slug, merged)

    async def retrieve(
        self,
        tenant_id: str,
        vendor_slug: str,
        expected_fields: Optional[List[CredentialField]] = None,
    ) -> Dict[str, object]:
        """
        Return decrypted credentials.

        ``expected_fields`` is the schema the caller intends to use the
        credentials with. A mismatch is rejected before the stored blob is
        read.

        Raises:
            InvalidCredentialSchemaError, CredentialNotFoundError,
            CredentialRevokedError, DecryptionFailedError
        """
        schema = await self._schema_for(vendor_slug)
        if expected_fields is not None and schema_signature(list(expected_fields)) != schema_signature(schema):
            raise InvalidCredentialSchemaError(
                f"Requested credential fields do not match the {vendor_slug} credential schema"
            )

        credential = await self._load_credential(tenant_id, vendor_slug)
        if credential is None:
            raise CredentialNotFoundError(f"No credentials stored for tenant {tenant_id} vendor {vendor_slug}")
        if credential.status == CredentialStatus.REVOKED.value:
            raise CredentialRevokedError(
                f"Credentials for tenant {tenant_id} vendor {vendor_slug} were revoked: {credential.revoked_reason or 'no reason given'}"
            )

        fields = decrypt_fields(self._key, tenant_id, vendor_slug, credential.encrypted_blob)
        return validate_credential_fields(vendor_slug, schema, fields)

    async def invalidate(self, tenant_id: str, vendor_slug: str, reason: Optional[str] = None) -> TenantVendorCredential:
        """Logically revoke credentials. The row and blob are kept."""
        credential = await self._load_credential(tenant_id, vendor_slug)
        if credential is None:
            raise CredentialNotFoundError(f"No credentials stored for tenant {tenant_id} vendor {vendor_slug}")
        credential.status = CredentialStatus.REVOKED.value
        credential.revoked_reason = reason
        credential.updated_at = utcnow()
        await self.db.commit()
        logger.warning(f"Revoked credentials for tenant {tenant_id} vendor {vendor_slug}: {reason}")
        return credential

    async def masked(self, tenant_id: str, vendor_slug: str) -> CredentialSummary:
        """Stored credentials with secret values masked, for display."""
        credential = await self._load_credential(tenant_id, vendor_slug)
        if credential is None:
            raise CredentialNotFoundError(f"No credentials stored for tenant {tenant_id} vendor {vendor_slug}")
        schema = {field.name: field for field in await self._schema_for(vendor_slug)}
        fields = decrypt_fields(self._key, tenant_id, vendor_slug, credential.encrypted_blob)
        shown = {}
        for name, value in fields.items():
            field = schema.get(name)
            shown[name] = mask_secret(str(value)) if field is None or field.secret else value
        return CredentialSummary(
            tenant_id=tenant_id,
            vendor_slug=vendor_slug,
            status=credential.status,
            connection_status=credential.connection_status,
            last_verified_at=credential.last_verified_at,
            fields=shown,
        )

    async def test_connection(self, tenant_id: str, vendor_slug: str) -> ConnectionTestResult:
        """
        Run the vendor handler's lightweight connection check with the stored
        credentials and record the outcome on the credential row.
        """
        if self.registry is None:
            raise ConfigurationError("test_connection requires a vendor handler registry")
        handler = self.registry.get_handler(vendor_slug)
        credentials = await self.retrieve(tenant_id, vendor_slug, expected_fields=handler.credential_fields)

        result = await handler.test_connection(credentials)
        result.tested_at = utcnow()

        credential = await self._load_credential(tenant_id, vendor_slug)
        credential.last_verified_at = result.tested_at
        credential.connection_status = (ConnectionStatus.OK if result.success else ConnectionStatus.FAILED).value
        credential.connection_message = result.message
        await self.db.commit()

        log = logger.info if result.success else logger.warning
        log(f"Connection test for tenant {tenant_id} vendor {vendor_slug}: {result.message}")
        return result
