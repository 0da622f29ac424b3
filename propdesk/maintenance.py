"""Maintenance request records kept in the ``requests`` storage region."""
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Dict, List, Optional

from .errors import ValidationError
from .models import MaintenanceRequest, RequestDraft, RequestStatus, parse_datetime, utcnow
from .storage import REQUESTS_KEY, KeyValueStore

logger = logging.getLogger("propdesk.maintenance")

MUTABLE_FIELDS = frozenset(
    {
        "status",
        "assigned_to",
        "assigned_by",
        "assigned_at",
        "completed_at",
        "completion_report",
        "completion_images",
        "reviewed_at",
        "rejection_reason",
    }
)

_DATETIME_FIELDS = ("assigned_at", "completed_at", "reviewed_at")


def _generate_request_id() -> str:
    return uuid.uuid4().hex


def _coerce_fields(fields: Dict[str, object]) -> Dict[str, object]:
    """Convert JSON-shaped values into the types stored on the record."""

    coerced = dict(fields)
    if "status" in coerced:
        try:
            coerced["status"] = RequestStatus(coerced["status"])
        except ValueError as exc:
            raise ValidationError(f"Unknown status '{coerced['status']}'") from exc
    for name in _DATETIME_FIELDS:
        value = coerced.get(name)
        if isinstance(value, str):
            try:
                coerced[name] = parse_datetime(value)
            except ValueError as exc:
                raise ValidationError(f"Invalid timestamp for {name}: '{value}'") from exc
    images = coerced.get("completion_images")
    if images is not None:
        coerced["completion_images"] = tuple(str(ref) for ref in images)  # type: ignore[union-attr]
    return coerced


class RequestStore:
    """Create, list and shallow-update maintenance requests.

    The store does not police status changes; :mod:`propdesk.lifecycle`
    decides which updates are legal.
    """

    def __init__(self, storage: KeyValueStore) -> None:
        self._storage = storage

    def list(self) -> List[MaintenanceRequest]:
        raw = self._storage.load_json(REQUESTS_KEY, [])
        return [MaintenanceRequest.from_dict(item) for item in raw]

    def get(self, request_id: str) -> Optional[MaintenanceRequest]:
        for request in self.list():
            if request.id == request_id:
                return request
        return None

    def create(self, draft: RequestDraft) -> MaintenanceRequest:
        draft.validate()
        request = MaintenanceRequest(
            id=_generate_request_id(),
            tenant_id=draft.tenant_id,
            tenant_name=draft.tenant_name,
            title=draft.title,
            description=draft.description,
            category=draft.category,
            priority=draft.priority,
            status=RequestStatus.PENDING,
            images=tuple(draft.images),
            created_at=utcnow(),
        )
        records = self._storage.load_json(REQUESTS_KEY, [])
        records.append(request.to_dict())
        self._storage.save_json(REQUESTS_KEY, records)
        logger.info("Filed request %s for tenant %s", request.id, request.tenant_id)
        return request

    def update(self, request_id: str, **fields: object) -> Optional[MaintenanceRequest]:
        """Merge ``fields`` into the stored request and return the result.

        Returns ``None`` when no request has ``request_id``. Only lifecycle
        fields may be changed; ``status`` and timestamp values may be given in
        their JSON form and are converted before merging.
        """

        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        changes = _coerce_fields(fields)

        records = self._storage.load_json(REQUESTS_KEY, [])
        for index, item in enumerate(records):
            if str(item.get("id")) != request_id:
                continue
            current = MaintenanceRequest.from_dict(item)
            updated = replace(current, **changes)  # type: ignore[arg-type]
            records[index] = updated.to_dict()
            self._storage.save_json(REQUESTS_KEY, records)
            return updated
        return None


__all__ = ["MUTABLE_FIELDS", "RequestStore"]
