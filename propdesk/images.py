"""Image blob storage and upload filtering."""
from __future__ import annotations

import base64
import binascii
import logging
import secrets
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Optional, Sequence, Tuple

import anyio

from .models import StoredImage, utcnow
from .storage import IMAGES_KEY, KeyValueStore

logger = logging.getLogger("propdesk.images")

ALLOWED_IMAGE_TYPES: FrozenSet[str] = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/heic"}
)
MAX_UPLOAD_BYTES = 10 * 1024 * 1024

_REF_PREFIX = "img_"


@dataclass(frozen=True)
class ImageUpload:
    """Raw bytes of a file picked by a user, before it is stored."""

    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    async def from_upload_file(cls, upload) -> "ImageUpload":
        """Read a Starlette ``UploadFile`` to completion."""

        data = await upload.read()
        return cls(
            name=upload.filename or "",
            content_type=(upload.content_type or "").lower(),
            data=data,
        )


@dataclass(frozen=True)
class UploadBatch:
    """Result of filtering a batch of uploads by type and size."""

    accepted: Tuple[ImageUpload, ...] = field(default_factory=tuple)
    rejected: Tuple[ImageUpload, ...] = field(default_factory=tuple)

    @property
    def rejected_names(self) -> Tuple[str, ...]:
        return tuple(upload.name for upload in self.rejected)

    @property
    def warning(self) -> Optional[str]:
        return skipped_files_warning(self.rejected_names)


def skipped_files_warning(names: Sequence[str]) -> Optional[str]:
    """Return the notice shown when files were left out of a submission."""

    if not names:
        return None
    listed = ", ".join(name or "unnamed file" for name in names)
    return (
        f"Skipped {len(names)} file(s) ({listed}). "
        "Only JPG, PNG, and HEIC files under 10MB are allowed."
    )


def filter_uploads(
    uploads: Iterable[ImageUpload],
    *,
    allowed_types: Iterable[str] = ALLOWED_IMAGE_TYPES,
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> UploadBatch:
    """Split ``uploads`` into files that may be stored and files that are dropped."""

    allowed = {item.lower() for item in allowed_types}
    accepted = []
    rejected = []
    for upload in uploads:
        if upload.content_type.lower() in allowed and upload.size <= max_bytes:
            accepted.append(upload)
        else:
            rejected.append(upload)
    if rejected:
        logger.warning(
            "Dropped %d of %d uploaded file(s) failing type or size checks",
            len(rejected),
            len(accepted) + len(rejected),
        )
    return UploadBatch(accepted=tuple(accepted), rejected=tuple(rejected))


def encode_data_url(content_type: str, data: bytes) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


def decode_data_url(value: str) -> Tuple[str, bytes]:
    """Return the MIME type and raw bytes held in a base64 ``data:`` URL."""

    if not value.startswith("data:") or "," not in value:
        raise ValueError("Not a data URL")
    header, payload = value[5:].split(",", 1)
    content_type, _, encoding = header.partition(";")
    if encoding != "base64":
        raise ValueError("Only base64 data URLs are supported")
    try:
        data = base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise ValueError("Malformed base64 payload") from exc
    return content_type or "application/octet-stream", data


class ImageStore:
    """Keep uploaded images in the ``images`` region keyed by generated refs."""

    def __init__(
        self,
        storage: KeyValueStore,
        *,
        allowed_types: Iterable[str] = ALLOWED_IMAGE_TYPES,
        max_bytes: int = MAX_UPLOAD_BYTES,
    ) -> None:
        self._storage = storage
        self._allowed_types = frozenset(item.lower() for item in allowed_types)
        self._max_bytes = max_bytes

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def select(self, uploads: Iterable[ImageUpload]) -> UploadBatch:
        return filter_uploads(uploads, allowed_types=self._allowed_types, max_bytes=self._max_bytes)

    async def save(self, upload: ImageUpload) -> str:
        """Store ``upload`` and return its new ref.

        Raises :class:`~propdesk.errors.StorageError` when the images region
        cannot be written; nothing is stored in that case.
        """

        data_url = await anyio.to_thread.run_sync(
            encode_data_url, upload.content_type, upload.data
        )
        images = self._load()
        ref = self._generate_ref(images)
        images[ref] = StoredImage(
            data=data_url,
            name=upload.name,
            type=upload.content_type,
            size=upload.size,
            uploaded_at=utcnow(),
        ).to_dict()
        self._storage.save_json(IMAGES_KEY, images)
        logger.debug("Stored image %s (%s, %d bytes)", ref, upload.content_type, upload.size)
        return ref

    def get(self, ref: str) -> Optional[str]:
        record = self._load().get(ref)
        if not isinstance(record, dict):
            return None
        data = record.get("data")
        return str(data) if data else None

    def get_record(self, ref: str) -> Optional[StoredImage]:
        record = self._load().get(ref)
        if not isinstance(record, dict):
            return None
        return StoredImage.from_dict(record)

    def decode(self, ref: str) -> Optional[Tuple[str, bytes]]:
        data = self.get(ref)
        if data is None:
            return None
        try:
            return decode_data_url(data)
        except ValueError:
            logger.warning("Image %s holds an unreadable data URL", ref)
            return None

    def discard(self, refs: Iterable[str]) -> None:
        """Remove images saved by a submission that was later aborted."""

        targets = set(refs)
        if not targets:
            return
        images = self._load()
        remaining = {ref: record for ref, record in images.items() if ref not in targets}
        if len(remaining) != len(images):
            self._storage.save_json(IMAGES_KEY, remaining)

    def _load(self) -> Dict[str, object]:
        images = self._storage.load_json(IMAGES_KEY, {})
        return images if isinstance(images, dict) else {}

    @staticmethod
    def _generate_ref(existing: Dict[str, object]) -> str:
        while True:
            ref = f"{_REF_PREFIX}{secrets.token_hex(8)}"
            if ref not in existing:
                return ref


__all__ = [
    "ALLOWED_IMAGE_TYPES",
    "ImageStore",
    "ImageUpload",
    "MAX_UPLOAD_BYTES",
    "UploadBatch",
    "decode_data_url",
    "encode_data_url",
    "filter_uploads",
    "skipped_files_warning",
]
