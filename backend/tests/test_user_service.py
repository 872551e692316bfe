import pytest

from authcore.core.exceptions import DuplicateRegistrationError
from authcore.models.role import RoleType
from authcore.schemas.user import RegisterRequest
from authcore.services.user_service import UserService

from conftest import MutableClock


@pytest.fixture
def users():
    return UserService(clock=MutableClock())


def _request(email="alice@example.com", mobile="+15550000001"):
    return RegisterRequest(name="Alice", email=email, mobile_number=mobile, password="long-enough-pw")


def test_register_assigns_user_role_only(db, users):
    user = users.register_user(db, _request())

    assert user.roles == {RoleType.USER}
    assert user.email == "alice@example.com"
    assert user.password_hash != "long-enough-pw"


def test_duplicate_email_is_case_insensitive(db, users):
    users.register_user(db, _request())

    with pytest.raises(DuplicateRegistrationError) as excinfo:
        users.register_user(db, _request(email="ALICE@example.com", mobile="+15550000002"))

    assert excinfo.value.status_code == 409
    assert set(excinfo.value.details) == {"email"}


def test_duplicate_mobile_number(db, users):
    users.register_user(db, _request())

    with pytest.raises(DuplicateRegistrationError) as excinfo:
        users.register_user(db, _request(email="other@example.com"))

    assert set(excinfo.value.details) == {"mobile_number"}


def test_bootstrap_admin_climbs_ladder_once(db, users):
    admin = users.bootstrap_admin(db, "root@example.com", "admin-password-123")

    db.refresh(admin)
    assert admin.roles == set(RoleType)
    assert users.bootstrap_admin(db, "ROOT@example.com", "admin-password-123") is None


def test_list_users_pages_by_id(db, users):
    for i in range(3):
        users.register_user(db, _request(email=f"user{i}@example.com", mobile=f"+1555000000{i}"))

    page, total = users.list_users(db, page=1, size=2)

    assert total == 3
    assert [u.email for u in page] == ["user2@example.com"]
