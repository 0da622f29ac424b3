"""User records kept in the ``users`` storage region."""
from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from .errors import ValidationError
from .models import User, UserRole, utcnow
from .storage import USERS_KEY, KeyValueStore

logger = logging.getLogger("propdesk.users")


def _normalise_email(email: str) -> str:
    return email.strip().lower()


def _generate_user_id() -> str:
    return uuid.uuid4().hex


class UserStore:
    """Read and append user records; users are never edited or deleted."""

    def __init__(self, storage: KeyValueStore) -> None:
        self._storage = storage

    def list(self) -> List[User]:
        raw = self._storage.load_json(USERS_KEY, [])
        return [User.from_dict(item) for item in raw]

    def get(self, user_id: str) -> Optional[User]:
        for user in self.list():
            if user.id == user_id:
                return user
        return None

    def find_by_email(self, email: str) -> Optional[User]:
        normalised = _normalise_email(email)
        for user in self.list():
            if _normalise_email(user.email) == normalised:
                return user
        return None

    def list_by_role(self, role: UserRole) -> List[User]:
        return [user for user in self.list() if user.role == role]

    def login_or_create(self, email: str, role: Optional[UserRole] = None) -> Optional[User]:
        """Return the user registered under ``email``, creating one if a role is given.

        An existing user is returned unchanged whatever ``role`` says. Without a
        role an unknown email does not log in and ``None`` is returned.
        """

        normalised = _normalise_email(email)
        if not normalised:
            raise ValidationError("Email address is required")

        existing = self.find_by_email(normalised)
        if existing is not None:
            return existing
        if role is None:
            return None

        user = User(
            id=_generate_user_id(),
            email=normalised,
            name=normalised.split("@", 1)[0],
            role=UserRole(role),
            created_at=utcnow(),
        )
        users = self._storage.load_json(USERS_KEY, [])
        users.append(user.to_dict())
        self._storage.save_json(USERS_KEY, users)
        logger.info("Created %s account %s for %s", user.role.value, user.id, user.email)
        return user


__all__ = ["UserStore"]
