"""Domain models for users, maintenance requests and stored images."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ValidationError


class UserRole(str, Enum):
    """The three kinds of actor the application knows about."""

    TENANT = "tenant"
    ADMIN = "admin"
    PROPERTY_MANAGER = "property_manager"


class RequestStatus(str, Enum):
    """Lifecycle state of a maintenance request."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def parse_datetime(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _optional_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return parse_datetime(str(value))


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


@dataclass(frozen=True)
class User:
    """Represents an account stored in the ``users`` region."""

    id: str
    email: str
    name: str
    role: UserRole
    created_at: datetime

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
            "createdAt": serialize_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "User":
        return cls(
            id=str(data["id"]),
            email=str(data["email"]),
            name=str(data["name"]),
            role=UserRole(data["role"]),
            created_at=parse_datetime(str(data["createdAt"])),
        )


@dataclass(frozen=True)
class StoredImage:
    """An uploaded image kept as a ``data:`` URL in the ``images`` region."""

    data: str
    name: str
    type: str
    size: int
    uploaded_at: datetime

    def to_dict(self) -> Dict[str, object]:
        return {
            "data": self.data,
            "name": self.name,
            "type": self.type,
            "size": self.size,
            "uploadedAt": serialize_datetime(self.uploaded_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StoredImage":
        return cls(
            data=str(data["data"]),
            name=str(data.get("name", "")),
            type=str(data.get("type", "")),
            size=int(data.get("size", 0)),
            uploaded_at=parse_datetime(str(data["uploadedAt"])),
        )


@dataclass(frozen=True)
class RequestDraft:
    """Fields a tenant supplies when filing a new request."""

    tenant_id: str
    tenant_name: str
    title: str
    description: str
    category: str
    priority: Priority = Priority.MEDIUM
    images: Tuple[str, ...] = field(default_factory=tuple)

    def validate(self) -> None:
        missing = [
            label
            for label, value in (
                ("title", self.title),
                ("description", self.description),
                ("category", self.category),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise ValidationError(f"Missing required field(s): {', '.join(missing)}")
        if not self.tenant_id:
            raise ValidationError("Requests must belong to a tenant")


@dataclass(frozen=True)
class MaintenanceRequest:
    """A tenant-filed issue together with its resolution history.

    Lifecycle fields stay ``None`` until the transition that sets them has
    happened, and are omitted from the persisted JSON while unset.
    """

    id: str
    tenant_id: str
    tenant_name: str
    title: str
    description: str
    category: str
    priority: Priority
    status: RequestStatus
    images: Tuple[str, ...]
    created_at: datetime
    assigned_to: Optional[str] = None
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completion_report: Optional[str] = None
    completion_images: Optional[Tuple[str, ...]] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "id": self.id,
            "tenantId": self.tenant_id,
            "tenantName": self.tenant_name,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "priority": self.priority.value,
            "status": self.status.value,
            "images": list(self.images),
            "createdAt": serialize_datetime(self.created_at),
        }
        optional: Dict[str, object] = {
            "assignedTo": self.assigned_to,
            "assignedBy": self.assigned_by,
            "assignedAt": serialize_datetime(self.assigned_at) if self.assigned_at else None,
            "completedAt": serialize_datetime(self.completed_at) if self.completed_at else None,
            "completionReport": self.completion_report,
            "completionImages": (
                list(self.completion_images) if self.completion_images is not None else None
            ),
            "reviewedAt": serialize_datetime(self.reviewed_at) if self.reviewed_at else None,
            "rejectionReason": self.rejection_reason,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MaintenanceRequest":
        completion_images = data.get("completionImages")
        return cls(
            id=str(data["id"]),
            tenant_id=str(data["tenantId"]),
            tenant_name=str(data.get("tenantName", "")),
            title=str(data["title"]),
            description=str(data.get("description", "")),
            category=str(data.get("category", "")),
            priority=Priority(data.get("priority", Priority.MEDIUM.value)),
            status=RequestStatus(data["status"]),
            images=tuple(str(ref) for ref in data.get("images") or ()),
            created_at=parse_datetime(str(data["createdAt"])),
            assigned_to=_optional_text(data.get("assignedTo")),
            assigned_by=_optional_text(data.get("assignedBy")),
            assigned_at=_optional_datetime(data.get("assignedAt")),
            completed_at=_optional_datetime(data.get("completedAt")),
            completion_report=_optional_text(data.get("completionReport")),
            completion_images=(
                tuple(str(ref) for ref in completion_images)
                if completion_images is not None
                else None
            ),
            reviewed_at=_optional_datetime(data.get("reviewedAt")),
            rejection_reason=_optional_text(data.get("rejectionReason")),
        )


__all__ = [
    "MaintenanceRequest",
    "Priority",
    "RequestDraft",
    "RequestStatus",
    "StoredImage",
    "User",
    "UserRole",
    "parse_datetime",
    "serialize_datetime",
    "utcnow",
]
