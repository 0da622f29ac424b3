from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from propdesk.application import PropertyDesk
from propdesk.config import Settings
from propdesk.errors import StorageError
from propdesk.images import ImageUpload
from propdesk.models import RequestStatus
from propdesk.web import create_app


def _build(tmp_path: Path, **overrides: object) -> tuple[TestClient, PropertyDesk]:
    desk = PropertyDesk.open(Settings(storage_path=tmp_path / "propdesk.sqlite3", **overrides))  # type: ignore[arg-type]
    app = create_app(desk, session_secret="tests-secret")
    return TestClient(app), desk


def _login_as(client: TestClient, role: str) -> None:
    response = client.post(f"/login/demo/{role}")
    assert response.status_code == 200


def _open_request(desk: PropertyDesk, title: str):
    matches = [item for item in desk.requests.list() if item.title == title]
    assert len(matches) == 1
    return matches[0]


def test_secret_is_required(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PROPDESK_SESSION_SECRET", raising=False)
    desk = PropertyDesk.open(Settings(storage_path=tmp_path / "propdesk.sqlite3"))

    with pytest.raises(RuntimeError):
        create_app(desk)


def test_first_visit_lands_on_admin_dashboard(tmp_path: Path) -> None:
    client, _ = _build(tmp_path)

    response = client.get("/")

    assert response.status_code == 200
    assert "Admin dashboard" in response.text
    assert "AC Unit Leaking Water" in response.text
    assert "Broken Kitchen Faucet" in response.text
    assert "Mike Manager" in response.text


def test_logout_then_login_by_email(tmp_path: Path) -> None:
    client, desk = _build(tmp_path)

    response = client.get("/logout")
    assert "Quick demo login" in response.text
    assert desk.session.current() is None

    assert "Quick demo login" in client.get("/dashboard").text

    response = client.post("/login", data={"email": "TENANT@example.com"})
    assert "Tenant dashboard" in response.text
    current = desk.session.current()
    assert current is not None and current.id == "1"


def test_unknown_email_without_role_is_refused(tmp_path: Path) -> None:
    client, desk = _build(tmp_path)
    client.get("/logout")

    response = client.post("/login", data={"email": "stranger@example.com"})

    assert "No account found for that email." in response.text
    assert desk.session.current() is None


def test_new_email_with_role_creates_account(tmp_path: Path) -> None:
    client, desk = _build(tmp_path)
    client.get("/logout")

    response = client.post(
        "/login", data={"email": "fixer@example.com", "role": "property_manager"}
    )

    assert "Property manager dashboard" in response.text
    assert desk.users.find_by_email("fixer@example.com") is not None


def test_demo_login_switches_role(tmp_path: Path) -> None:
    client, _ = _build(tmp_path)

    _login_as(client, "property_manager")
    response = client.get("/dashboard")

    assert "Property manager dashboard" in response.text
    assert "Broken Kitchen Faucet" in response.text
    assert "AC Unit Leaking Water" not in response.text

    response = client.post("/login/demo/janitor")
    assert "The demo account is not available." in response.text


def test_admin_status_filter(tmp_path: Path) -> None:
    client, _ = _build(tmp_path)

    response = client.get("/dashboard", params={"status": "pending"})
    assert "AC Unit Leaking Water" in response.text
    assert "Broken Kitchen Faucet" not in response.text

    response = client.get("/dashboard", params={"status": "archived"})
    assert "Unknown status filter" in response.text
    assert "Broken Kitchen Faucet" in response.text


def test_submission_skips_unsupported_files(tmp_path: Path) -> None:
    client, desk = _build(tmp_path)
    _login_as(client, "tenant")

    response = client.post(
        "/requests",
        data={
            "title": "Cracked window",
            "description": "Bedroom window pane is cracked",
            "category": "Structural",
            "priority": "urgent",
        },
        files=[
            ("images", ("window.jpg", b"\xff\xd8\xff\xe0jpeg", "image/jpeg")),
            ("images", ("notes.txt", b"not an image", "text/plain")),
        ],
    )

    assert response.status_code == 200
    assert "Skipped 1 file(s)" in response.text
    assert "notes.txt" in response.text
    assert "Your maintenance request has been submitted successfully." in response.text

    created = _open_request(desk, "Cracked window")
    assert created.status == RequestStatus.PENDING
    assert created.priority.value == "urgent"
    assert len(created.images) == 1

    image = client.get(f"/images/{created.images[0]}")
    assert image.status_code == 200
    assert image.headers["content-type"].startswith("image/jpeg")
    assert image.content == b"\xff\xd8\xff\xe0jpeg"


def test_submission_with_missing_fields_shows_error(tmp_path: Path) -> None:
    client, desk = _build(tmp_path)
    _login_as(client, "tenant")
    before = len(desk.requests.list())

    response = client.post("/requests", data={"title": "No details"})

    assert "Missing required field(s)" in response.text
    assert len(desk.requests.list()) == before


def test_request_lifecycle_through_the_browser(tmp_path: Path) -> None:
    client, desk = _build(tmp_path)

    response = client.post("/requests/1/assign", data={"manager_id": "3"})
    assert "The maintenance request has been assigned successfully." in response.text

    _login_as(client, "property_manager")
    response = client.post("/requests/1/start")
    assert "The maintenance work has been marked as in progress." in response.text

    response = client.post("/requests/1/complete", data={"report": "   "})
    assert "Please provide a completion report." in response.text
    in_progress = desk.requests.get("1")
    assert in_progress is not None and in_progress.status == RequestStatus.IN_PROGRESS

    response = client.post(
        "/requests/1/complete",
        data={"report": "Cleared the drain line"},
        files=[("images", ("after.png", b"\x89PNGdata", "image/png"))],
    )
    assert "ready for tenant review" in response.text

    _login_as(client, "tenant")
    response = client.get("/dashboard")
    assert "Cleared the drain line" in response.text
    assert "Approve work" in response.text

    response = client.post("/requests/1/reject", data={"reason": "Still leaking"})
    assert "The maintenance work has been rejected with feedback." in response.text

    _login_as(client, "property_manager")
    response = client.post("/requests/1/reopen")
    assert "The request is back in progress." in response.text

    client.post("/requests/1/complete", data={"report": "Replaced the drain pan"})

    _login_as(client, "tenant")
    response = client.post("/requests/1/approve")
    assert "The maintenance work has been approved successfully." in response.text

    approved = desk.requests.get("1")
    assert approved is not None
    assert approved.status == RequestStatus.APPROVED
    assert approved.completion_report == "Replaced the drain pan"
    assert approved.rejection_reason == "Still leaking"


def test_actions_by_the_wrong_role_are_refused(tmp_path: Path) -> None:
    client, desk = _build(tmp_path)

    response = client.post("/requests/2/start")
    assert "Only a property manager can" in response.text

    response = client.post("/requests/1/assign", data={"manager_id": ""})
    assert "Please choose a property manager." in response.text

    response = client.post("/requests/missing/assign", data={"manager_id": "3"})
    assert "Request not found." in response.text

    pending = desk.requests.get("1")
    assert pending is not None and pending.status == RequestStatus.PENDING


def test_unknown_image_is_not_found(tmp_path: Path) -> None:
    client, _ = _build(tmp_path)

    response = client.get("/images/img_missing")

    assert response.status_code == 404


def test_oversized_upload_is_skipped_without_being_read(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    client, desk = _build(tmp_path, max_upload_bytes=16)
    _login_as(client, "tenant")

    read: list[str] = []
    original = ImageUpload.from_upload_file

    async def recording(cls, upload):
        read.append(upload.filename)
        return await original(upload)

    monkeypatch.setattr(ImageUpload, "from_upload_file", classmethod(recording))

    response = client.post(
        "/requests",
        data={"title": "Mould", "description": "Black spots on wall", "category": "Other"},
        files=[
            ("images", ("small.png", b"\x89PNG", "image/png")),
            ("images", ("large.jpg", b"\xff" * 64, "image/jpeg")),
        ],
    )

    assert "Skipped 1 file(s) (large.jpg)." in response.text
    assert "Your maintenance request has been submitted successfully." in response.text
    assert read == ["small.png"]
    created = _open_request(desk, "Mould")
    assert len(created.images) == 1


def test_demo_login_reports_storage_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    client, desk = _build(tmp_path)
    client.get("/logout")

    def failing_login(email, role=None):
        raise StorageError("disk unavailable")

    monkeypatch.setattr(desk.session, "login", failing_login)

    response = client.post("/login/demo/tenant")

    assert response.status_code == 200
    assert "Failed to sign in. Please try again." in response.text
    assert "Quick demo login" in response.text
