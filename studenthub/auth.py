"""
Student Hub Session Management
==============================

Login, signup and logout on top of whichever backend the store uses:
  fixture   users.json, case-insensitive email + exact password
  api       POST /auth/login through the gateway, token persisted

The logged-in profile is kept under `currentUser` in the key-value store so a
later run picks the session up again.
"""

import time
from typing import Any, Dict, Optional

from studenthub.events import ChangeType
from studenthub.exceptions import ValidationError
from studenthub.gateway import utc_now_iso
from studenthub.logging_config import logger
from studenthub.models import UserRole
from studenthub.storage import CURRENT_USER_KEY
from studenthub.store import EntityStore


def role_from_email(email: str) -> str:
    """Derive the account role from the email address"""
    email = (email or "").lower()
    if "@student." in email:
        return UserRole.STUDENT.value
    if "@faculty." in email:
        return UserRole.FACULTY.value
    if "@admin." in email or email == "admin@college.edu":
        return UserRole.ADMIN.value
    return UserRole.STUDENT.value


class AuthSession:
    """Current user session for one store"""

    def __init__(self, store: EntityStore):
        self.store = store
        self.backend = store.backend
        self.kv_store = store.backend.kv_store
        self.bus = store.bus

        stored = self.kv_store.get(CURRENT_USER_KEY)
        self._user: Optional[Dict[str, Any]] = stored if isinstance(stored, dict) else None

    @property
    def current_user(self) -> Optional[Dict[str, Any]]:
        return dict(self._user) if self._user else None

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    def _start_session(self, user: Dict[str, Any]) -> Dict[str, Any]:
        self._user = dict(user)
        self.kv_store.set(CURRENT_USER_KEY, self._user)
        logger.info(f"[Auth] Logged in as {user.get('email')}", extra={"role": user.get("role")})
        self.bus.notify(ChangeType.USER_LOGGED_IN, dict(self._user))
        return dict(self._user)

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """
        Authenticate and start a session.

        Raises:
            AuthenticationError: unknown email, wrong password or inactive account
        """
        user = await self.backend.authenticate(email, password)
        user.setdefault("role", role_from_email(email))
        user["lastLogin"] = utc_now_iso()
        return self._start_session(user)

    async def signup(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create an account and log straight into it"""
        email = (data.get("email") or "").strip().lower()
        password = data.get("password") or ""

        if not email:
            raise ValidationError("Email is required", field="email")
        if not password:
            raise ValidationError("Password is required", field="password")
        if password != data.get("confirmPassword"):
            raise ValidationError("Passwords do not match", field="confirmPassword")

        role = role_from_email(email)
        new_user = {
            "id": f"USR{int(time.time() * 1000)}",
            "name": data.get("name") or email.split("@")[0],
            "email": email,
            "password": password,
            "role": role,
            "isActive": True,
            "createdAt": utc_now_iso(),
        }
        for optional in ("department", "rollNumber", "studentId", "facultyId"):
            if data.get(optional):
                new_user[optional] = data[optional]

        profile = await self.backend.register_user(new_user)
        return self._start_session(profile)

    async def logout(self) -> None:
        """End the session; local state is cleared even if the backend call fails"""
        try:
            await self.backend.end_session()
        finally:
            email = self._user.get("email") if self._user else None
            self._user = None
            self.kv_store.remove(CURRENT_USER_KEY)
            logger.info(f"[Auth] Logged out {email or ''}".rstrip())
            self.bus.notify(ChangeType.USER_LOGGED_OUT)

    def update_user(self, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Shallow-merge updates into the stored profile"""
        if self._user is None:
            return None
        self._user = {**self._user, **updates}
        self.kv_store.set(CURRENT_USER_KEY, self._user)
        return dict(self._user)

    def get_profile(self) -> Optional[Dict[str, Any]]:
        """The Student or Faculty record linked to the current user"""
        if self._user is None:
            return None
        if self._user.get("studentId"):
            return self.store.get_student_by_id(self._user["studentId"])
        if self._user.get("facultyId"):
            return self.store.get_faculty_by_id(self._user["facultyId"])
        return None
