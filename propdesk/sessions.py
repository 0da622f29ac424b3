"""Current-user pointer persisted in the ``current_user`` storage region."""

from __future__ import annotations

import logging
from typing import Optional

from .models import User, UserRole
from .storage import CURRENT_USER_KEY, KeyValueStore
from .users import UserStore

logger = logging.getLogger("propdesk.sessions")


class Session:
    """Track which user the application is acting as.

    The pointer is a copy of the user record and lives independently of the
    ``users`` region. :meth:`initialize` signs in an arbitrary admin when no
    one is signed in; this is a demo convenience, not access control.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        users: UserStore,
        *,
        auto_login_admin: bool = True,
    ) -> None:
        self._storage = storage
        self._users = users
        self._auto_login_admin = auto_login_admin

    def initialize(self) -> Optional[User]:
        current = self.current()
        if current is not None or not self._auto_login_admin:
            return current
        admins = self._users.list_by_role(UserRole.ADMIN)
        if not admins:
            return None
        admin = admins[0]
        self.set_current(admin)
        logger.info("No active session; signed in demo admin %s", admin.email)
        return admin

    def current(self) -> Optional[User]:
        raw = self._storage.load_json(CURRENT_USER_KEY)
        if not raw:
            return None
        return User.from_dict(raw)

    def set_current(self, user: Optional[User]) -> None:
        if user is None:
            self._storage.remove(CURRENT_USER_KEY)
        else:
            self._storage.save_json(CURRENT_USER_KEY, user.to_dict())

    def login(self, email: str, role: Optional[UserRole] = None) -> Optional[User]:
        user = self._users.login_or_create(email, role)
        if user is not None:
            self.set_current(user)
            logger.info("Signed in %s as %s", user.email, user.role.value)
        return user

    def logout(self) -> None:
        self.set_current(None)


__all__ = ["Session"]
