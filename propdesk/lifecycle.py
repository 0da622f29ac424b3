"""Status transitions for maintenance requests and the fields each one records.

::

    pending     -> assigned      assign        admin
    assigned    -> in_progress   start_work    assigned manager
    in_progress -> completed     complete      assigned manager
    completed   -> approved      approve       owning tenant
    completed   -> rejected      reject        owning tenant
    rejected    -> in_progress   reopen        assigned manager

``approved`` is terminal. ``rejected`` only leaves through :meth:`reopen`.
Every check runs before anything is written, so a failed operation leaves the
request exactly as it was.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, FrozenSet, Iterable, List, Optional

from .errors import ForbiddenActionError, StorageError, TransitionError, ValidationError
from .images import ImageStore, ImageUpload, UploadBatch
from .maintenance import RequestStore
from .models import MaintenanceRequest, Priority, RequestDraft, RequestStatus, User, UserRole, utcnow

logger = logging.getLogger("propdesk.lifecycle")

TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.ASSIGNED}),
    RequestStatus.ASSIGNED: frozenset({RequestStatus.IN_PROGRESS}),
    RequestStatus.IN_PROGRESS: frozenset({RequestStatus.COMPLETED}),
    RequestStatus.COMPLETED: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset(),
    RequestStatus.REJECTED: frozenset({RequestStatus.IN_PROGRESS}),
}


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in TRANSITIONS[current]


@dataclass(frozen=True)
class UploadOutcome:
    """A request written by an operation that took uploads, plus the files it skipped."""

    request: MaintenanceRequest
    batch: UploadBatch

    @property
    def warning(self) -> Optional[str]:
        return self.batch.warning


def _require_transition(request: MaintenanceRequest, target: RequestStatus) -> None:
    if not can_transition(request.status, target):
        raise TransitionError(
            f"Request '{request.title}' is {request.status.label} and cannot become {target.label}"
        )


def _require_role(user: User, role: UserRole, action: str) -> None:
    if user.role != role:
        raise ForbiddenActionError(f"Only a {role.value.replace('_', ' ')} can {action}")


def _require_assignee(request: MaintenanceRequest, manager: User, action: str) -> None:
    _require_role(manager, UserRole.PROPERTY_MANAGER, action)
    if request.assigned_to != manager.id:
        raise ForbiddenActionError(f"Only the assigned property manager can {action}")


def _require_owner(request: MaintenanceRequest, tenant: User, action: str) -> None:
    _require_role(tenant, UserRole.TENANT, action)
    if request.tenant_id != tenant.id:
        raise ForbiddenActionError(f"Only the tenant who filed the request can {action}")


def _require_text(value: Optional[str], message: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(message)
    return value.strip()


class RequestLifecycle:
    """Apply lifecycle operations to requests held by a :class:`RequestStore`.

    Operations on an unknown request id return ``None``, matching the store's
    ``update`` contract.
    """

    def __init__(self, requests: RequestStore, images: ImageStore) -> None:
        self._requests = requests
        self._images = images

    async def submit(
        self,
        tenant: User,
        *,
        title: str,
        description: str,
        category: str,
        priority: Priority | str = Priority.MEDIUM,
        uploads: Iterable[ImageUpload] = (),
    ) -> UploadOutcome:
        """File a new request on behalf of ``tenant``.

        Uploads of a disallowed type or size are skipped and reported on the
        returned :class:`UploadOutcome`; the rest are stored with the request.
        """

        _require_role(tenant, UserRole.TENANT, "submit maintenance requests")
        try:
            level = Priority(priority)
        except ValueError as exc:
            raise ValidationError(f"Unknown priority '{priority}'") from exc
        draft = RequestDraft(
            tenant_id=tenant.id,
            tenant_name=tenant.name,
            title=title.strip(),
            description=description.strip(),
            category=category.strip(),
            priority=level,
        )
        draft.validate()

        batch = self._images.select(uploads)
        refs = await self._save_images(batch.accepted)
        try:
            request = self._requests.create(replace(draft, images=tuple(refs)))
        except StorageError:
            self._discard(refs)
            raise
        return UploadOutcome(request=request, batch=batch)

    def assign(self, request_id: str, *, admin: User, manager: User) -> Optional[MaintenanceRequest]:
        _require_role(admin, UserRole.ADMIN, "assign requests")
        if manager.role != UserRole.PROPERTY_MANAGER:
            raise ValidationError(f"{manager.name} is not a property manager")

        request = self._requests.get(request_id)
        if request is None:
            return None
        _require_transition(request, RequestStatus.ASSIGNED)

        updated = self._requests.update(
            request_id,
            status=RequestStatus.ASSIGNED,
            assigned_to=manager.id,
            assigned_by=admin.id,
            assigned_at=utcnow(),
        )
        logger.info("Request %s assigned to %s by %s", request_id, manager.id, admin.id)
        return updated

    def start_work(self, request_id: str, *, manager: User) -> Optional[MaintenanceRequest]:
        request = self._requests.get(request_id)
        if request is None:
            return None
        _require_transition(request, RequestStatus.IN_PROGRESS)
        if request.status != RequestStatus.ASSIGNED or not request.assigned_to:
            raise TransitionError("Work can only start on an assigned request")
        _require_assignee(request, manager, "start work on this request")

        updated = self._requests.update(request_id, status=RequestStatus.IN_PROGRESS)
        logger.info("Work started on request %s by %s", request_id, manager.id)
        return updated

    async def complete(
        self,
        request_id: str,
        *,
        manager: User,
        report: str,
        uploads: Iterable[ImageUpload] = (),
    ) -> Optional[UploadOutcome]:
        """Record the completion report, uploading its images first.

        If any image fails to save, images already saved for this call are
        removed again and the request is left untouched.
        """

        request = self._requests.get(request_id)
        if request is None:
            return None
        cleaned_report = _require_text(report, "Please provide a completion report.")
        _require_transition(request, RequestStatus.COMPLETED)
        _require_assignee(request, manager, "complete this request")

        batch = self._images.select(uploads)
        refs = await self._save_images(batch.accepted)
        try:
            updated = self._requests.update(
                request_id,
                status=RequestStatus.COMPLETED,
                completed_at=utcnow(),
                completion_report=cleaned_report,
                completion_images=tuple(refs),
            )
        except StorageError:
            self._discard(refs)
            raise
        logger.info(
            "Request %s completed by %s with %d image(s)", request_id, manager.id, len(refs)
        )
        if updated is None:
            return None
        return UploadOutcome(request=updated, batch=batch)

    def approve(self, request_id: str, *, tenant: User) -> Optional[MaintenanceRequest]:
        request = self._requests.get(request_id)
        if request is None:
            return None
        _require_transition(request, RequestStatus.APPROVED)
        _require_owner(request, tenant, "approve this work")

        updated = self._requests.update(
            request_id,
            status=RequestStatus.APPROVED,
            reviewed_at=utcnow(),
        )
        logger.info("Request %s approved by tenant %s", request_id, tenant.id)
        return updated

    def reject(self, request_id: str, *, tenant: User, reason: str) -> Optional[MaintenanceRequest]:
        request = self._requests.get(request_id)
        if request is None:
            return None
        cleaned_reason = _require_text(reason, "Please provide a reason for rejection.")
        _require_transition(request, RequestStatus.REJECTED)
        _require_owner(request, tenant, "reject this work")

        updated = self._requests.update(
            request_id,
            status=RequestStatus.REJECTED,
            reviewed_at=utcnow(),
            rejection_reason=cleaned_reason,
        )
        logger.info("Request %s rejected by tenant %s", request_id, tenant.id)
        return updated

    def reopen(self, request_id: str, *, manager: User) -> Optional[MaintenanceRequest]:
        """Send a rejected request back to ``in_progress`` for rework.

        The earlier completion report and the tenant's rejection reason stay on
        the record until the next completion overwrites the report.
        """

        request = self._requests.get(request_id)
        if request is None:
            return None
        if request.status != RequestStatus.REJECTED:
            raise TransitionError("Only rejected requests can be reopened")
        _require_assignee(request, manager, "reopen this request")

        updated = self._requests.update(request_id, status=RequestStatus.IN_PROGRESS)
        logger.info("Request %s reopened by %s", request_id, manager.id)
        return updated

    async def _save_images(self, uploads: Iterable[ImageUpload]) -> List[str]:
        refs: List[str] = []
        for upload in uploads:
            try:
                refs.append(await self._images.save(upload))
            except StorageError:
                logger.warning(
                    "Saving image %s failed; aborting submission after %d saved image(s)",
                    upload.name,
                    len(refs),
                )
                self._discard(refs)
                raise
        return refs

    def _discard(self, refs: List[str]) -> None:
        if not refs:
            return
        try:
            self._images.discard(refs)
        except StorageError:
            logger.warning("Could not remove %d orphaned image(s)", len(refs), exc_info=True)


__all__ = ["RequestLifecycle", "TRANSITIONS", "UploadOutcome", "can_transition"]
