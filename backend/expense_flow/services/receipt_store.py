from __future__ import annotations

import asyncio
import logging
import mimetypes
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from expense_flow.config import Settings, get_settings
from expense_flow.exceptions import NotFoundError, ValidationError

if TYPE_CHECKING:
    from fastapi import UploadFile

logger = logging.getLogger(__name__)


@runtime_checkable
class ReceiptStore(Protocol):
    """Interface for opaque receipt blob storage."""

    async def put(self, owner_id: uuid.UUID, filename: str, data: bytes) -> str:
        """Store the bytes and return an opaque key."""
        ...

    async def get(self, key: str) -> bytes | None:
        """Return the stored bytes, or None if the key is unknown."""
        ...

    async def delete(self, key: str) -> None:
        """Remove the blob if present."""
        ...


def _extension(filename: str) -> str:
    return Path(filename).suffix.lower().lstrip(".")


def _new_key(owner_id: uuid.UUID, filename: str) -> str:
    stamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
    return f"{owner_id}/receipt-{stamp}-{uuid.uuid4().hex}.{_extension(filename)}"


def _too_large(settings: Settings) -> ValidationError:
    max_mb = settings.max_receipt_bytes // (1024 * 1024)
    return ValidationError(f"Receipt exceeds the {max_mb}MB limit", field="receipt")


async def read_upload(upload: UploadFile | None, settings: Settings | None = None) -> tuple[str | None, bytes]:
    """Read an uploaded receipt without buffering more than the size limit.

    A declared size over the limit is refused before reading. Otherwise at
    most one byte past the limit is read, which ``validate_receipt`` rejects.
    """
    if upload is None:
        return None, b""
    settings = settings or get_settings()
    if upload.size is not None and upload.size > settings.max_receipt_bytes:
        raise _too_large(settings)
    data = await upload.read(settings.max_receipt_bytes + 1)
    return upload.filename, data


def validate_receipt(filename: str | None, data: bytes, settings: Settings | None = None) -> str:
    """Check type and size of an uploaded receipt. Returns the filename."""
    settings = settings or get_settings()
    if not filename:
        raise ValidationError("Receipt is required", field="receipt")
    if _extension(filename) not in settings.allowed_receipt_extensions:
        allowed = ", ".join(settings.allowed_receipt_extensions)
        raise ValidationError(f"Only image files are allowed ({allowed})", field="receipt")
    if not data:
        raise ValidationError("Receipt file is empty", field="receipt")
    if len(data) > settings.max_receipt_bytes:
        raise _too_large(settings)
    return filename


def media_type_for(key: str) -> str:
    return mimetypes.guess_type(key)[0] or "application/octet-stream"


class LocalReceiptStore:
    """Stores receipts as files below a base directory."""

    def __init__(self, base_dir: str | Path) -> None:
        self._base = Path(base_dir)

    def _path(self, key: str) -> Path:
        path = (self._base / key).resolve()
        if not path.is_relative_to(self._base.resolve()):
            raise NotFoundError("Receipt not found")
        return path

    async def put(self, owner_id: uuid.UUID, filename: str, data: bytes) -> str:
        key = _new_key(owner_id, filename)
        path = self._path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.info("Stored receipt %s (%d bytes)", key, len(data))
        return key

    async def get(self, key: str) -> bytes | None:
        path = self._path(key)
        if not path.is_file():
            return None
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, key: str) -> None:
        path = self._path(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)


class InMemoryReceiptStore:
    """In-memory stub implementation for development."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    async def put(self, owner_id: uuid.UUID, filename: str, data: bytes) -> str:
        key = _new_key(owner_id, filename)
        self._blobs[key] = data
        return key

    async def get(self, key: str) -> bytes | None:
        return self._blobs.get(key)

    async def delete(self, key: str) -> None:
        self._blobs.pop(key, None)

    def __len__(self) -> int:
        return len(self._blobs)


_receipt_store: ReceiptStore | None = None


def get_receipt_store() -> ReceiptStore:
    """Return the configured receipt store."""
    global _receipt_store
    if _receipt_store is None:
        _receipt_store = LocalReceiptStore(get_settings().receipt_dir)
    return _receipt_store


def set_receipt_store(store: ReceiptStore | None) -> None:
    """Override the store (for testing or production wiring)."""
    global _receipt_store
    _receipt_store = store
