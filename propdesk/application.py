"""Wire the stores together and build the ASGI application."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import Settings, load_settings
from .demo import seed_demo_data
from .images import ImageStore
from .lifecycle import RequestLifecycle
from .maintenance import RequestStore
from .sessions import Session
from .storage import KeyValueStore
from .users import UserStore

logger = logging.getLogger("propdesk.application")


@dataclass
class PropertyDesk:
    """Everything a view or command needs, passed around explicitly."""

    storage: KeyValueStore
    users: UserStore
    requests: RequestStore
    images: ImageStore
    session: Session
    lifecycle: RequestLifecycle

    @classmethod
    def open(cls, settings: Settings) -> "PropertyDesk":
        """Open storage, seed demo data if configured and restore the session."""

        storage = KeyValueStore(settings.storage_path, quota_bytes=settings.storage_quota_bytes)
        storage.initialize()
        if settings.seed_demo_data:
            seed_demo_data(storage)

        users = UserStore(storage)
        requests = RequestStore(storage)
        images = ImageStore(
            storage,
            allowed_types=settings.allowed_image_types,
            max_bytes=settings.max_upload_bytes,
        )
        session = Session(storage, users, auto_login_admin=settings.auto_login_admin)
        session.initialize()

        logger.info("Opened storage at %s", settings.storage_path)
        return cls(
            storage=storage,
            users=users,
            requests=requests,
            images=images,
            session=session,
            lifecycle=RequestLifecycle(requests, images),
        )


def create_application(
    *,
    config_path: Optional[Path] = None,
    settings: Optional[Settings] = None,
):
    """Create the web application from settings on disk and in the environment."""

    from .web import create_app

    if settings is None:
        settings = load_settings(config_path)
    desk = PropertyDesk.open(settings)
    return create_app(desk, session_secret=settings.session_secret)


__all__ = ["PropertyDesk", "create_application"]
