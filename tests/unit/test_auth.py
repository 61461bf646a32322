"""
Unit Tests for session management
"""
import pytest

from studenthub.auth import AuthSession, role_from_email
from studenthub.events import ChangeType
from studenthub.exceptions import AuthenticationError, ValidationError
from studenthub.storage import CURRENT_USER_KEY


class TestRoleFromEmail:

    @pytest.mark.parametrize("email,role", [
        ("aarav@student.college.edu", "student"),
        ("meera@faculty.college.edu", "faculty"),
        ("ops@admin.college.edu", "admin"),
        ("ADMIN@college.edu", "admin"),
        ("someone@gmail.com", "student"),
    ])
    def test_roles(self, email, role):
        assert role_from_email(email) == role


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_is_case_insensitive_on_email(self, store, kv_store, recorder):
        store.bus.subscribe("Header", recorder)
        session = AuthSession(store)

        user = await session.login("Admin@College.edu", "admin123")

        assert user["role"] == "admin"
        assert "password" not in user
        assert session.is_authenticated
        assert kv_store.get(CURRENT_USER_KEY)["id"] == "USR001"
        assert recorder.types == [ChangeType.USER_LOGGED_IN]

    @pytest.mark.asyncio
    async def test_wrong_password(self, store):
        session = AuthSession(store)
        with pytest.raises(AuthenticationError):
            await session.login("admin@college.edu", "nope")
        assert not session.is_authenticated

    @pytest.mark.asyncio
    async def test_inactive_user_refused(self, store):
        with pytest.raises(AuthenticationError):
            await AuthSession(store).login("former.student@student.college.edu", "student123")

    @pytest.mark.asyncio
    async def test_session_survives_restart(self, store):
        await AuthSession(store).login("aarav.sharma@student.college.edu", "student123")

        restored = AuthSession(store)

        assert restored.is_authenticated
        assert restored.current_user["studentId"] == "STU001"

    @pytest.mark.asyncio
    async def test_profile_links_to_student(self, store):
        session = AuthSession(store)
        await session.login("aarav.sharma@student.college.edu", "student123")

        assert session.get_profile()["name"] == "Aarav Sharma"

    @pytest.mark.asyncio
    async def test_profile_links_to_faculty(self, store):
        session = AuthSession(store)
        await session.login("rajesh.kumar@faculty.college.edu", "faculty123")

        assert session.get_profile()["id"] == "FAC001"


class TestLogout:

    @pytest.mark.asyncio
    async def test_logout_clears_session(self, store, kv_store, recorder):
        session = AuthSession(store)
        await session.login("admin@college.edu", "admin123")
        store.bus.subscribe("Header", recorder)

        await session.logout()

        assert not session.is_authenticated
        assert session.current_user is None
        assert session.get_profile() is None
        assert kv_store.get(CURRENT_USER_KEY) is None
        assert recorder.types == [ChangeType.USER_LOGGED_OUT]


class TestSignup:

    @pytest.mark.asyncio
    async def test_signup_logs_in_with_derived_role(self, store):
        session = AuthSession(store)

        user = await session.signup({
            "name": "Kavya Rao",
            "email": "kavya@faculty.college.edu",
            "password": "secret1",
            "confirmPassword": "secret1",
        })

        assert user["role"] == "faculty"
        assert "password" not in user
        assert session.is_authenticated

    @pytest.mark.asyncio
    async def test_new_account_can_log_in(self, store):
        session = AuthSession(store)
        await session.signup({
            "email": "new@student.college.edu",
            "password": "pw",
            "confirmPassword": "pw",
        })
        await session.logout()

        user = await session.login("new@student.college.edu", "pw")

        assert user["name"] == "new"

    @pytest.mark.asyncio
    async def test_password_mismatch(self, store):
        with pytest.raises(ValidationError) as exc:
            await AuthSession(store).signup({"email": "x@y.z", "password": "a", "confirmPassword": "b"})
        assert exc.value.details["field"] == "confirmPassword"

    @pytest.mark.asyncio
    async def test_duplicate_email(self, store):
        with pytest.raises(ValidationError):
            await AuthSession(store).signup({
                "email": "ADMIN@college.edu", "password": "a", "confirmPassword": "a",
            })


class TestUpdateUser:

    @pytest.mark.asyncio
    async def test_shallow_merge(self, store, kv_store):
        session = AuthSession(store)
        await session.login("admin@college.edu", "admin123")

        updated = session.update_user({"name": "Chief Admin"})

        assert updated["name"] == "Chief Admin"
        assert updated["email"] == "admin@college.edu"
        assert kv_store.get(CURRENT_USER_KEY)["name"] == "Chief Admin"

    @pytest.mark.asyncio
    async def test_update_without_session(self, store):
        assert AuthSession(store).update_user({"name": "x"}) is None
