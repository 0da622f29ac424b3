from __future__ import annotations

from pathlib import Path

import pytest

from propdesk.application import PropertyDesk
from propdesk.config import Settings
from propdesk.errors import ForbiddenActionError, StorageError, TransitionError, ValidationError
from propdesk.images import MAX_UPLOAD_BYTES, ImageUpload
from propdesk.lifecycle import TRANSITIONS, can_transition
from propdesk.models import Priority, RequestStatus, User
from propdesk.storage import IMAGES_KEY


def _open(tmp_path: Path, **overrides: object) -> PropertyDesk:
    settings = Settings(storage_path=tmp_path / "propdesk.sqlite3", **overrides)  # type: ignore[arg-type]
    return PropertyDesk.open(settings)


@pytest.fixture()
def desk(tmp_path: Path) -> PropertyDesk:
    return _open(tmp_path)


def _user(desk: PropertyDesk, user_id: str) -> User:
    user = desk.users.get(user_id)
    assert user is not None
    return user


def _photo(name: str = "photo.jpg", size: int = 32) -> ImageUpload:
    return ImageUpload(name=name, content_type="image/jpeg", data=b"\xff" * size)


def _to_in_progress(desk: PropertyDesk) -> str:
    manager = _user(desk, "3")
    desk.lifecycle.start_work("2", manager=manager)
    return "2"


async def _to_completed(desk: PropertyDesk) -> str:
    request_id = _to_in_progress(desk)
    await desk.lifecycle.complete(request_id, manager=_user(desk, "3"), report="Replaced the cartridge.")
    return request_id


def test_transition_table_only_allows_forward_moves() -> None:
    assert can_transition(RequestStatus.PENDING, RequestStatus.ASSIGNED)
    assert can_transition(RequestStatus.COMPLETED, RequestStatus.REJECTED)
    assert can_transition(RequestStatus.REJECTED, RequestStatus.IN_PROGRESS)
    assert not can_transition(RequestStatus.PENDING, RequestStatus.IN_PROGRESS)
    assert not can_transition(RequestStatus.ASSIGNED, RequestStatus.COMPLETED)
    assert TRANSITIONS[RequestStatus.APPROVED] == frozenset()


@pytest.mark.anyio
async def test_tenant_submission_stores_images_and_starts_pending(desk: PropertyDesk) -> None:
    tenant = _user(desk, "1")

    outcome = await desk.lifecycle.submit(
        tenant,
        title="Leak",
        description="Sink leaking",
        category="Plumbing",
        priority="high",
        uploads=[_photo("one.jpg"), _photo("two.jpg")],
    )
    created = outcome.request

    assert outcome.warning is None
    assert created.status == RequestStatus.PENDING
    assert created.priority == Priority.HIGH
    assert created.tenant_id == "1"
    assert created.tenant_name == "John Tenant"
    assert len(created.images) == 2
    assert all(desk.images.get(ref) for ref in created.images)
    assert desk.requests.get(created.id) == created


@pytest.mark.anyio
async def test_submission_requires_a_tenant(desk: PropertyDesk) -> None:
    with pytest.raises(ForbiddenActionError):
        await desk.lifecycle.submit(
            _user(desk, "2"), title="Leak", description="Sink", category="Plumbing"
        )


@pytest.mark.anyio
async def test_submission_rejects_blank_fields_and_unknown_priority(desk: PropertyDesk) -> None:
    tenant = _user(desk, "1")
    before = len(desk.requests.list())

    with pytest.raises(ValidationError):
        await desk.lifecycle.submit(tenant, title=" ", description="Sink", category="Plumbing")
    with pytest.raises(ValidationError):
        await desk.lifecycle.submit(
            tenant, title="Leak", description="Sink", category="Plumbing", priority="whenever"
        )

    assert len(desk.requests.list()) == before
    assert desk.storage.load_json(IMAGES_KEY, {}) == {}


@pytest.mark.anyio
async def test_full_lifecycle_through_approval(desk: PropertyDesk) -> None:
    tenant, admin, manager = _user(desk, "1"), _user(desk, "2"), _user(desk, "3")

    assigned = desk.lifecycle.assign("1", admin=admin, manager=manager)
    assert assigned is not None
    assert assigned.status == RequestStatus.ASSIGNED
    assert assigned.assigned_to == "3"
    assert assigned.assigned_by == "2"
    assert assigned.assigned_at is not None

    started = desk.lifecycle.start_work("1", manager=manager)
    assert started is not None and started.status == RequestStatus.IN_PROGRESS

    outcome = await desk.lifecycle.complete(
        "1", manager=manager, report="  Cleared the drain line.  ", uploads=[_photo()]
    )
    assert outcome is not None
    completed = outcome.request
    assert completed.status == RequestStatus.COMPLETED
    assert completed.completion_report == "Cleared the drain line."
    assert completed.completed_at is not None
    assert completed.completion_images is not None and len(completed.completion_images) == 1

    approved = desk.lifecycle.approve("1", tenant=tenant)
    assert approved is not None
    assert approved.status == RequestStatus.APPROVED
    assert approved.reviewed_at is not None
    assert approved.rejection_reason is None


@pytest.mark.anyio
async def test_completion_without_images_records_empty_list(desk: PropertyDesk) -> None:
    request_id = await _to_completed(desk)

    completed = desk.requests.get(request_id)

    assert completed is not None
    assert completed.completion_images == ()


@pytest.mark.anyio
async def test_rejection_records_reason_and_can_be_reopened(desk: PropertyDesk) -> None:
    request_id = await _to_completed(desk)
    tenant, manager = _user(desk, "1"), _user(desk, "3")

    with pytest.raises(ValidationError):
        desk.lifecycle.reject(request_id, tenant=tenant, reason="   ")

    rejected = desk.lifecycle.reject(request_id, tenant=tenant, reason="Still dripping")
    assert rejected is not None
    assert rejected.status == RequestStatus.REJECTED
    assert rejected.rejection_reason == "Still dripping"

    with pytest.raises(TransitionError):
        desk.lifecycle.approve(request_id, tenant=tenant)

    reopened = desk.lifecycle.reopen(request_id, manager=manager)
    assert reopened is not None
    assert reopened.status == RequestStatus.IN_PROGRESS
    assert reopened.rejection_reason == "Still dripping"

    outcome = await desk.lifecycle.complete(request_id, manager=manager, report="Replaced the valve.")
    assert outcome is not None
    redone = outcome.request
    assert redone.status == RequestStatus.COMPLETED
    assert redone.completion_report == "Replaced the valve."


@pytest.mark.anyio
async def test_blank_completion_report_leaves_request_in_progress(desk: PropertyDesk) -> None:
    request_id = _to_in_progress(desk)

    with pytest.raises(ValidationError):
        await desk.lifecycle.complete(request_id, manager=_user(desk, "3"), report="  ", uploads=[_photo()])

    current = desk.requests.get(request_id)
    assert current is not None
    assert current.status == RequestStatus.IN_PROGRESS
    assert current.completion_report is None
    assert desk.storage.load_json(IMAGES_KEY, {}) == {}


@pytest.mark.anyio
async def test_illegal_transitions_are_refused(desk: PropertyDesk) -> None:
    tenant, admin, manager = _user(desk, "1"), _user(desk, "2"), _user(desk, "3")

    with pytest.raises(TransitionError):
        desk.lifecycle.start_work("1", manager=manager)
    with pytest.raises(TransitionError):
        desk.lifecycle.approve("1", tenant=tenant)
    with pytest.raises(TransitionError):
        desk.lifecycle.assign("2", admin=admin, manager=manager)
    with pytest.raises(TransitionError):
        await desk.lifecycle.complete("2", manager=manager, report="Done")
    with pytest.raises(TransitionError):
        desk.lifecycle.reopen("2", manager=manager)

    pending = desk.requests.get("1")
    assigned = desk.requests.get("2")
    assert pending is not None and pending.status == RequestStatus.PENDING
    assert assigned is not None and assigned.status == RequestStatus.ASSIGNED


@pytest.mark.anyio
async def test_approved_requests_are_final(desk: PropertyDesk) -> None:
    request_id = await _to_completed(desk)
    tenant = _user(desk, "1")
    desk.lifecycle.approve(request_id, tenant=tenant)

    with pytest.raises(TransitionError):
        desk.lifecycle.reject(request_id, tenant=tenant, reason="Changed my mind")
    with pytest.raises(TransitionError):
        desk.lifecycle.reopen(request_id, manager=_user(desk, "3"))


@pytest.mark.anyio
async def test_actors_must_hold_the_right_role(desk: PropertyDesk) -> None:
    tenant, admin, manager = _user(desk, "1"), _user(desk, "2"), _user(desk, "3")
    other_manager = desk.users.login_or_create("other@example.com", manager.role)
    other_tenant = desk.users.login_or_create("neighbour@example.com", tenant.role)
    assert other_manager is not None and other_tenant is not None

    with pytest.raises(ForbiddenActionError):
        desk.lifecycle.assign("1", admin=tenant, manager=manager)
    with pytest.raises(ValidationError):
        desk.lifecycle.assign("1", admin=admin, manager=tenant)
    with pytest.raises(ForbiddenActionError):
        desk.lifecycle.start_work("2", manager=other_manager)
    with pytest.raises(ForbiddenActionError):
        desk.lifecycle.start_work("2", manager=admin)

    request_id = await _to_completed(desk)
    with pytest.raises(ForbiddenActionError):
        desk.lifecycle.approve(request_id, tenant=other_tenant)
    with pytest.raises(ForbiddenActionError):
        desk.lifecycle.reject(request_id, tenant=admin, reason="No")

    current = desk.requests.get(request_id)
    assert current is not None and current.status == RequestStatus.COMPLETED


@pytest.mark.anyio
async def test_unknown_request_id_returns_none(desk: PropertyDesk) -> None:
    tenant, admin, manager = _user(desk, "1"), _user(desk, "2"), _user(desk, "3")

    assert desk.lifecycle.assign("missing", admin=admin, manager=manager) is None
    assert desk.lifecycle.start_work("missing", manager=manager) is None
    assert await desk.lifecycle.complete("missing", manager=manager, report="Done") is None
    assert desk.lifecycle.approve("missing", tenant=tenant) is None
    assert desk.lifecycle.reject("missing", tenant=tenant, reason="No") is None
    assert desk.lifecycle.reopen("missing", manager=manager) is None


@pytest.mark.anyio
async def test_completion_aborts_when_images_do_not_fit(tmp_path: Path) -> None:
    desk = _open(tmp_path, storage_quota_bytes=200_000)
    request_id = _to_in_progress(desk)

    with pytest.raises(StorageError):
        await desk.lifecycle.complete(
            request_id,
            manager=_user(desk, "3"),
            report="Fixed",
            uploads=[_photo("a.jpg", 90_000), _photo("b.jpg", 90_000)],
        )

    current = desk.requests.get(request_id)
    assert current is not None
    assert current.status == RequestStatus.IN_PROGRESS
    assert current.completion_images is None
    assert desk.storage.load_json(IMAGES_KEY, {}) == {}


@pytest.mark.anyio
async def test_submission_skips_oversized_and_unsupported_files(desk: PropertyDesk) -> None:
    outcome = await desk.lifecycle.submit(
        _user(desk, "1"),
        title="Broken tile",
        description="Bathroom floor tile cracked",
        category="Structural",
        uploads=[
            _photo("front.jpg"),
            ImageUpload(name="detail.png", content_type="image/png", data=b"png"),
            _photo("huge.jpg", MAX_UPLOAD_BYTES + 1),
            ImageUpload(name="anim.gif", content_type="image/gif", data=b"gif"),
        ],
    )

    assert len(outcome.request.images) == 2
    assert all(desk.images.get(ref) for ref in outcome.request.images)
    assert outcome.batch.rejected_names == ("huge.jpg", "anim.gif")
    assert outcome.warning is not None
    assert outcome.warning.startswith("Skipped 2 file(s) (huge.jpg, anim.gif).")
    assert len(desk.storage.load_json(IMAGES_KEY, {})) == 2


@pytest.mark.anyio
async def test_completion_skips_oversized_files(desk: PropertyDesk) -> None:
    request_id = _to_in_progress(desk)

    outcome = await desk.lifecycle.complete(
        request_id,
        manager=_user(desk, "3"),
        report="Done",
        uploads=[_photo("after.jpg"), _photo("raw.jpg", MAX_UPLOAD_BYTES + 1)],
    )

    assert outcome is not None
    assert outcome.request.completion_images is not None
    assert len(outcome.request.completion_images) == 1
    assert outcome.batch.rejected_names == ("raw.jpg",)


@pytest.mark.anyio
async def test_submission_aborts_when_images_do_not_fit(tmp_path: Path) -> None:
    desk = _open(tmp_path, storage_quota_bytes=200_000)
    before = desk.requests.list()

    with pytest.raises(StorageError):
        await desk.lifecycle.submit(
            _user(desk, "1"),
            title="Water damage",
            description="Ceiling stain spreading",
            category="Structural",
            uploads=[_photo("a.jpg", 90_000), _photo("b.jpg", 90_000)],
        )

    assert desk.requests.list() == before
    assert desk.storage.load_json(IMAGES_KEY, {}) == {}


@pytest.mark.anyio
async def test_blank_completion_report_leaves_assigned_request_unchanged(desk: PropertyDesk) -> None:
    before = desk.requests.get("2")

    with pytest.raises(ValidationError):
        await desk.lifecycle.complete("2", manager=_user(desk, "3"), report="   ")

    after = desk.requests.get("2")
    assert after == before
    assert after is not None and after.status == RequestStatus.ASSIGNED
