"""In-memory user repository."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from authguard.app.core.security import hash_password, verify_password


@dataclass
class User:
    id: int
    username: str
    password_hash: str
    role: str = "user"
    status: str = "active"
    last_login: datetime | None = None

    def public(self) -> dict:
        return {"id": self.id, "username": self.username, "role": self.role, "status": self.status}


class UserStore:
    """Usernames are matched case-insensitively."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._users: dict[str, User] = {}
        self._next_id = 1

    def create_user(self, username: str, password: str, role: str = "user") -> Optional[User]:
        """Create a user; returns None when the username is taken."""
        password_hash = hash_password(password)
        key = username.lower()
        with self._lock:
            if key in self._users:
                return None
            user = User(id=self._next_id, username=username, password_hash=password_hash, role=role)
            self._users[key] = user
            self._next_id += 1
            return user

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            return self._users.get(username.lower())

    def authenticate(self, username: str, password: str) -> Optional[User]:
        user = self.get_user_by_username(username)
        if not user or not verify_password(password, user.password_hash):
            return None
        return user
