"""Browser interface: per-role dashboards over the request lifecycle."""
from __future__ import annotations

import html
import inspect
import logging
import os
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from starlette.middleware.sessions import SessionMiddleware

from .application import PropertyDesk
from .demo import DEMO_EMAILS
from .errors import ForbiddenActionError, StorageError, TransitionError, ValidationError
from .images import ImageUpload, skipped_files_warning
from .lifecycle import UploadOutcome
from .models import MaintenanceRequest, Priority, RequestStatus, User, UserRole
from .views import (
    STATUS_FILTER_ALL,
    STATUS_FILTERS,
    AdminDashboard,
    Dashboard,
    ManagerDashboard,
    RequestStats,
    TenantDashboard,
    build_dashboard,
)

logger = logging.getLogger("propdesk.web")

CATEGORIES = ("Plumbing", "Electrical", "HVAC", "Appliances", "Structural", "Pest Control", "Other")

_ROLE_LABELS = {
    UserRole.TENANT: "Tenant",
    UserRole.ADMIN: "Admin",
    UserRole.PROPERTY_MANAGER: "Property Manager",
}

_STYLE = """
body { font-family: system-ui, sans-serif; margin: 0; background: #f9fafb; color: #111827; }
.navbar { display: flex; justify-content: space-between; padding: 1rem 2rem; background: #1d4ed8; color: #fff; }
.navbar a { color: #fff; margin-left: 1rem; }
.page { max-width: 960px; margin: 2rem auto; padding: 0 1rem; }
.card { background: #fff; border-radius: 8px; padding: 1rem 1.5rem; margin-bottom: 1rem; box-shadow: 0 1px 3px rgba(0,0,0,.1); }
.alert { padding: .75rem 1rem; border-radius: 6px; margin-bottom: 1rem; }
.alert--success { background: #dcfce7; } .alert--error { background: #fee2e2; } .alert--warning { background: #fef9c3; }
.badge { display: inline-block; padding: .1rem .5rem; border-radius: 999px; font-size: .8rem; background: #e5e7eb; }
.stats { display: flex; gap: 1rem; flex-wrap: wrap; } .stats div { text-align: center; }
.thumbs img { max-height: 96px; margin-right: .5rem; border-radius: 4px; }
form.inline { display: inline-block; margin-right: .5rem; }
""".strip()


def _format_datetime(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.strftime("%Y-%m-%d %H:%M UTC")


def _use_secure_cookies() -> bool:
    raw = os.getenv("PROPDESK_SESSION_SECURE")
    if raw is None:
        return False
    return raw.strip().lower() not in {"0", "false", "no", "off"}


def create_app(desk: PropertyDesk, *, session_secret: Optional[str] = None) -> FastAPI:
    """Create the web application serving the role dashboards."""

    if session_secret is None:
        session_secret = os.getenv("PROPDESK_SESSION_SECRET")
    if not session_secret:
        raise RuntimeError("PROPDESK_SESSION_SECRET must be configured to use the web interface")

    app = FastAPI(
        title="PropertyDesk",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.desk = desk
    app.add_middleware(
        SessionMiddleware,
        secret_key=session_secret,
        session_cookie="propdesk_session",
        https_only=_use_secure_cookies(),
        same_site="lax",
    )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def _flash(request: Request, message: str, *, category: str = "info") -> None:
        messages = request.session.get("flash_messages")
        if not isinstance(messages, list):
            messages = []
        messages.append({"message": message, "category": category})
        request.session["flash_messages"] = messages

    def _consume_flash(request: Request) -> List[Dict[str, str]]:
        messages = request.session.pop("flash_messages", [])
        if isinstance(messages, list):
            return messages
        return []

    def _redirect(request: Request, name: str) -> RedirectResponse:
        return RedirectResponse(request.url_for(name), status_code=status.HTTP_303_SEE_OTHER)

    async def _perform(
        request: Request,
        operation: Callable[[], object],
        *,
        success: str,
        failure: str,
        skipped: Sequence[str] = (),
    ) -> RedirectResponse:
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
        except (ValidationError, TransitionError, ForbiddenActionError) as exc:
            _flash(request, str(exc), category="error")
        except StorageError:
            logger.warning("Storage failure while handling %s", request.url.path, exc_info=True)
            _flash(request, failure, category="error")
        else:
            if isinstance(result, UploadOutcome):
                skipped = [*skipped, *result.batch.rejected_names]
                result = result.request
            warning = skipped_files_warning(skipped)
            if warning:
                _flash(request, warning, category="warning")
            if result is None:
                _flash(request, "Request not found.", category="error")
            else:
                _flash(request, success, category="success")
        return _redirect(request, "dashboard")

    async def _read_uploads(files: Optional[List[UploadFile]]) -> Tuple[List[ImageUpload], List[str]]:
        """Read picked files, leaving out any whose declared size is already too large."""

        uploads: List[ImageUpload] = []
        oversized: List[str] = []
        for item in files or []:
            if not item.filename:
                continue
            if item.size is not None and item.size > desk.images.max_bytes:
                oversized.append(item.filename)
                continue
            uploads.append(await ImageUpload.from_upload_file(item))
        return uploads, oversized

    # ------------------------------------------------------------------
    # Markup
    # ------------------------------------------------------------------
    def _page(request: Request, *, user: Optional[User], title: str, content: str) -> HTMLResponse:
        alerts = "".join(
            f'<div class="alert alert--{html.escape(item.get("category", "info"))}">'
            f'{html.escape(str(item.get("message", "")))}</div>'
            for item in _consume_flash(request)
        )
        if user is not None:
            nav = (
                f'<span>{html.escape(user.name)} · {_ROLE_LABELS[user.role]}</span>'
                f'<span><a href="{request.url_for("dashboard")}">Dashboard</a>'
                f'<a href="{request.url_for("logout")}">Sign out</a></span>'
            )
        else:
            nav = ""
        markup = (
            "<!DOCTYPE html>\n"
            "<html lang=\"en\">\n"
            "  <head>\n"
            "    <meta charset=\"utf-8\" />\n"
            "    <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\" />\n"
            f"    <title>{html.escape(title)} · PropertyDesk</title>\n"
            f"    <style>{_STYLE}</style>\n"
            "  </head>\n"
            "  <body>\n"
            f'    <header class="navbar"><strong>PropertyDesk</strong>{nav}</header>\n'
            '    <main class="page">\n'
            f"{alerts}{content}\n"
            "    </main>\n"
            "  </body>\n"
            "</html>"
        )
        return HTMLResponse(markup)

    def _stats_markup(stats: RequestStats, labels: Iterable[str]) -> str:
        cells = "".join(
            f"<div><strong>{getattr(stats, field)}</strong><br />{field.replace('_', ' ').title()}</div>"
            for field in labels
        )
        return f'<section class="card stats">{cells}</section>'

    def _images_markup(request: Request, refs: Iterable[str], heading: str) -> str:
        refs = list(refs)
        if not refs:
            return ""
        thumbs = "".join(
            f'<img src="{request.url_for("image", ref=ref)}" alt="{html.escape(heading)}" />'
            for ref in refs
        )
        return f'<div class="thumbs"><em>{html.escape(heading)}</em><br />{thumbs}</div>'

    def _request_card(request: Request, item: MaintenanceRequest, actions: str, extra: str = "") -> str:
        details = [
            f"<h3>{html.escape(item.title)} "
            f'<span class="badge">{html.escape(item.status.label)}</span> '
            f'<span class="badge">{html.escape(item.priority.value)}</span></h3>',
            f"<p>{html.escape(item.description)}</p>",
            f"<p><small>{html.escape(item.category)} · filed by {html.escape(item.tenant_name)}"
            f" on {_format_datetime(item.created_at)}</small></p>",
            _images_markup(request, item.images, "Reported photos"),
        ]
        if item.assigned_at:
            details.append(f"<p><small>Assigned {_format_datetime(item.assigned_at)}</small></p>")
        if item.completion_report:
            details.append(
                f"<p><strong>Completion report</strong> ({_format_datetime(item.completed_at)}): "
                f"{html.escape(item.completion_report)}</p>"
            )
            details.append(_images_markup(request, item.completion_images or (), "Completion photos"))
        if item.rejection_reason:
            details.append(
                f"<p><strong>Tenant rejection reason:</strong> {html.escape(item.rejection_reason)}</p>"
            )
        details.append(extra)
        details.append(actions)
        return f'<article class="card">{"".join(details)}</article>'

    def _post_button(request: Request, name: str, request_id: str, label: str) -> str:
        return (
            f'<form class="inline" method="post" action="{request.url_for(name, request_id=request_id)}">'
            f'<button type="submit">{html.escape(label)}</button></form>'
        )

    def _render_tenant(request: Request, view: TenantDashboard) -> HTMLResponse:
        priorities = "".join(
            f'<option value="{p.value}"{" selected" if p is Priority.MEDIUM else ""}>{p.value.title()}</option>'
            for p in Priority
        )
        categories = "".join(f'<option value="{html.escape(c)}">{html.escape(c)}</option>' for c in CATEGORIES)
        form = f"""
<section class="card">
  <h2>New maintenance request</h2>
  <form method="post" action="{request.url_for('submit_request')}" enctype="multipart/form-data">
    <p><label>Title <input name="title" required /></label></p>
    <p><label>Description <textarea name="description" required></textarea></label></p>
    <p><label>Category <select name="category" required><option value="">Choose…</option>{categories}</select></label></p>
    <p><label>Priority <select name="priority">{priorities}</select></label></p>
    <p><label>Photos <input type="file" name="images" multiple accept="image/jpeg,image/png,image/heic" /></label></p>
    <button type="submit">Submit request</button>
  </form>
</section>
"""
        cards = []
        for item in view.requests:
            actions = ""
            if item.status == RequestStatus.COMPLETED:
                actions = _post_button(request, "approve_request", item.id, "Approve work") + (
                    f'<form method="post" action="{request.url_for("reject_request", request_id=item.id)}">'
                    '<label>Reason for rejection <textarea name="reason"></textarea></label>'
                    '<button type="submit">Reject work</button></form>'
                )
            cards.append(_request_card(request, item, actions))
        listing = "".join(cards) or '<p class="card">You have not filed any requests yet.</p>'
        content = (
            "<h1>Tenant dashboard</h1>"
            + _stats_markup(view.stats, ("total", "pending", "in_progress", "completed", "approved"))
            + form
            + listing
        )
        return _page(request, user=view.user, title="Tenant dashboard", content=content)

    def _render_admin(request: Request, view: AdminDashboard) -> HTMLResponse:
        filters = " ".join(
            (
                f"<strong>{html.escape(option)}</strong>"
                if option == view.status_filter
                else f'<a href="{request.url_for("dashboard").include_query_params(status=option)}">'
                f"{html.escape(option.replace('_', ' '))}</a>"
            )
            for option in STATUS_FILTERS
        )
        manager_options = "".join(
            f'<option value="{html.escape(m.id)}">{html.escape(m.name)}</option>' for m in view.managers
        )
        cards = []
        for item in view.requests:
            actions = ""
            extra = ""
            if item.assigned_to:
                extra = f"<p><small>Assigned to {html.escape(view.manager_name(item.assigned_to))}</small></p>"
            if item.status == RequestStatus.PENDING:
                actions = (
                    f'<form method="post" action="{request.url_for("assign_request", request_id=item.id)}">'
                    f'<select name="manager_id" required><option value="">Assign to property manager…</option>'
                    f"{manager_options}</select> <button type=\"submit\">Assign</button></form>"
                )
            cards.append(_request_card(request, item, actions, extra))
        listing = "".join(cards) or '<p class="card">No requests found for the selected filter.</p>'
        content = (
            "<h1>Admin dashboard</h1>"
            + _stats_markup(
                view.stats, ("total", "pending", "assigned", "in_progress", "completed", "approved")
            )
            + f'<p class="card">Filter: {filters}</p>'
            + listing
        )
        return _page(request, user=view.user, title="Admin dashboard", content=content)

    def _render_manager(request: Request, view: ManagerDashboard) -> HTMLResponse:
        cards = []
        for item in view.requests:
            actions = ""
            if item.status == RequestStatus.ASSIGNED:
                actions = _post_button(request, "start_work", item.id, "Start work")
            elif item.status == RequestStatus.IN_PROGRESS:
                actions = f"""
<form method="post" action="{request.url_for('complete_request', request_id=item.id)}" enctype="multipart/form-data">
  <p><label>Completion report <textarea name="report"></textarea></label></p>
  <p><label>Photos <input type="file" name="images" multiple accept="image/jpeg,image/png,image/heic" /></label></p>
  <button type="submit">Mark as completed</button>
</form>
"""
            elif item.status == RequestStatus.REJECTED:
                actions = _post_button(request, "reopen_request", item.id, "Resume work")
            cards.append(_request_card(request, item, actions))
        listing = "".join(cards) or '<p class="card">No requests are assigned to you.</p>'
        content = (
            "<h1>Property manager dashboard</h1>"
            + _stats_markup(view.stats, ("assigned", "in_progress", "completed", "approved"))
            + listing
        )
        return _page(request, user=view.user, title="Property manager dashboard", content=content)

    renderers: Dict[type, Callable[[Request, Dashboard], HTMLResponse]] = {
        TenantDashboard: _render_tenant,  # type: ignore[dict-item]
        AdminDashboard: _render_admin,  # type: ignore[dict-item]
        ManagerDashboard: _render_manager,  # type: ignore[dict-item]
    }

    def _render_login(request: Request) -> HTMLResponse:
        roles = "".join(
            f'<option value="{role.value}">{_ROLE_LABELS[role]}</option>' for role in UserRole
        )
        quick = "".join(
            f'<form class="inline" method="post" action="{request.url_for("demo_login", role=role.value)}">'
            f'<button type="submit">{_ROLE_LABELS[role]}</button></form>'
            for role in UserRole
        )
        content = f"""
<section class="card">
  <h1>Property Management</h1>
  <p>Enter your email and select your role.</p>
  <form method="post" action="{request.url_for('process_login')}">
    <p><label>Email <input type="email" name="email" required /></label></p>
    <p><label>Role <select name="role">{roles}</select></label></p>
    <button type="submit">Sign in</button>
  </form>
</section>
<section class="card">
  <h2>Quick demo login</h2>
  {quick}
</section>
"""
        return _page(request, user=None, title="Sign in", content=content)

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------
    @app.get("/", name="root")
    async def root(request: Request):
        if desk.session.current() is None:
            return _redirect(request, "show_login")
        return _redirect(request, "dashboard")

    @app.get("/login", response_class=HTMLResponse, name="show_login")
    async def login_form(request: Request):
        if desk.session.current() is not None:
            return _redirect(request, "dashboard")
        return _render_login(request)

    @app.post("/login", name="process_login")
    async def process_login(request: Request, email: str = Form(""), role: str = Form("")):
        try:
            selected = UserRole(role) if role else None
        except ValueError:
            _flash(request, f"Unknown role '{role}'.", category="error")
            return _redirect(request, "show_login")

        try:
            user = desk.session.login(email, selected)
        except ValidationError as exc:
            _flash(request, str(exc), category="error")
            return _redirect(request, "show_login")
        except StorageError:
            logger.warning("Storage failure during login for %s", email, exc_info=True)
            _flash(request, "Failed to sign in. Please try again.", category="error")
            return _redirect(request, "show_login")

        if user is None:
            logger.warning("Login attempt for unknown email %s without a role", email)
            _flash(request, "No account found for that email.", category="error")
            return _redirect(request, "show_login")
        return _redirect(request, "dashboard")

    @app.post("/login/demo/{role}", name="demo_login")
    async def demo_login(request: Request, role: str):
        email = DEMO_EMAILS.get(role)
        try:
            user = desk.session.login(email) if email else None
        except StorageError:
            logger.warning("Storage failure during demo login as %s", role, exc_info=True)
            _flash(request, "Failed to sign in. Please try again.", category="error")
            return _redirect(request, "show_login")
        if user is None:
            _flash(request, "The demo account is not available.", category="error")
            return _redirect(request, "show_login")
        return _redirect(request, "dashboard")

    @app.get("/logout", name="logout")
    async def logout(request: Request):
        desk.session.logout()
        request.session.clear()
        return _redirect(request, "show_login")

    @app.get("/dashboard", response_class=HTMLResponse, name="dashboard")
    async def dashboard(request: Request):
        user = desk.session.current()
        if user is None:
            return _redirect(request, "show_login")
        selected = request.query_params.get("status", STATUS_FILTER_ALL)
        if selected not in STATUS_FILTERS:
            _flash(request, f"Unknown status filter '{selected}'.", category="error")
            selected = STATUS_FILTER_ALL
        view = build_dashboard(user, desk.requests, desk.users, status_filter=selected)
        return renderers[type(view)](request, view)

    @app.post("/requests", name="submit_request")
    async def submit_request(
        request: Request,
        title: str = Form(""),
        description: str = Form(""),
        category: str = Form(""),
        priority: str = Form(Priority.MEDIUM.value),
        images: Optional[List[UploadFile]] = File(None),
    ):
        user = desk.session.current()
        if user is None:
            return _redirect(request, "show_login")
        uploads, oversized = await _read_uploads(images)
        return await _perform(
            request,
            lambda: desk.lifecycle.submit(
                user,
                title=title,
                description=description,
                category=category,
                priority=priority,
                uploads=uploads,
            ),
            success="Your maintenance request has been submitted successfully.",
            failure="Failed to submit request. Please try again.",
            skipped=oversized,
        )

    @app.post("/requests/{request_id}/assign", name="assign_request")
    async def assign_request(request: Request, request_id: str, manager_id: str = Form("")):
        user = desk.session.current()
        if user is None:
            return _redirect(request, "show_login")
        manager = desk.users.get(manager_id)
        if manager is None:
            _flash(request, "Please choose a property manager.", category="error")
            return _redirect(request, "dashboard")
        return await _perform(
            request,
            lambda: desk.lifecycle.assign(request_id, admin=user, manager=manager),
            success="The maintenance request has been assigned successfully.",
            failure="Failed to assign request. Please try again.",
        )

    @app.post("/requests/{request_id}/start", name="start_work")
    async def start_work(request: Request, request_id: str):
        user = desk.session.current()
        if user is None:
            return _redirect(request, "show_login")
        return await _perform(
            request,
            lambda: desk.lifecycle.start_work(request_id, manager=user),
            success="The maintenance work has been marked as in progress.",
            failure="Failed to start work. Please try again.",
        )

    @app.post("/requests/{request_id}/complete", name="complete_request")
    async def complete_request(
        request: Request,
        request_id: str,
        report: str = Form(""),
        images: Optional[List[UploadFile]] = File(None),
    ):
        user = desk.session.current()
        if user is None:
            return _redirect(request, "show_login")
        uploads, oversized = await _read_uploads(images)
        return await _perform(
            request,
            lambda: desk.lifecycle.complete(request_id, manager=user, report=report, uploads=uploads),
            success="The maintenance work has been marked as completed and is ready for tenant review.",
            failure="Failed to complete work. Please try again.",
            skipped=oversized,
        )

    @app.post("/requests/{request_id}/reopen", name="reopen_request")
    async def reopen_request(request: Request, request_id: str):
        user = desk.session.current()
        if user is None:
            return _redirect(request, "show_login")
        return await _perform(
            request,
            lambda: desk.lifecycle.reopen(request_id, manager=user),
            success="The request is back in progress.",
            failure="Failed to reopen request. Please try again.",
        )

    @app.post("/requests/{request_id}/approve", name="approve_request")
    async def approve_request(request: Request, request_id: str):
        user = desk.session.current()
        if user is None:
            return _redirect(request, "show_login")
        return await _perform(
            request,
            lambda: desk.lifecycle.approve(request_id, tenant=user),
            success="The maintenance work has been approved successfully.",
            failure="Failed to approve work. Please try again.",
        )

    @app.post("/requests/{request_id}/reject", name="reject_request")
    async def reject_request(request: Request, request_id: str, reason: str = Form("")):
        user = desk.session.current()
        if user is None:
            return _redirect(request, "show_login")
        return await _perform(
            request,
            lambda: desk.lifecycle.reject(request_id, tenant=user, reason=reason),
            success="The maintenance work has been rejected with feedback.",
            failure="Failed to reject work. Please try again.",
        )

    @app.get("/images/{ref}", name="image")
    async def image(ref: str):
        decoded = desk.images.decode(ref)
        if decoded is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
        content_type, data = decoded
        return Response(content=data, media_type=content_type)

    return app


__all__ = ["create_app"]
