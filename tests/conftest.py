"""
Shared pytest fixtures for the testhub test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - storage: LocalStorage under tmp_path, installed on the app
    - make_user / auth_header: users with tags and their bearer headers
    - admin / manager: ready-made principals with headers
    - make_group / make_case: test groups and cases built through the services
"""

import pytest

from testhub import create_app
from testhub.core.principal import Principal
from testhub.models import db as _db
from testhub.models.auth import User, UserRole, UserTag
from testhub.services import test_case_service, test_group_service
from testhub.services.jwt_service import generate_access_token
from testhub.services.storage_service import LocalStorage
from testhub.services.user_service import get_or_create_tag
from testhub.utils.crypto import hash_password

DEFAULT_PASSWORD = "Secret-pass-123"

# bcrypt hashes cached per password for the whole session
_PASSWORD_HASHES: dict[str, str] = {}


def _hash(password):
    if password not in _PASSWORD_HASHES:
        _PASSWORD_HASHES[password] = hash_password(password)
    return _PASSWORD_HASHES[password]


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def storage(app, tmp_path, monkeypatch):
    """Object storage rooted in this test's tmp_path."""
    local = LocalStorage(tmp_path / "storage")
    monkeypatch.setitem(app.extensions, "object_storage", local)
    return local


# ── Users & tokens ───────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: make_user(email, role=GENERAL, tags=("body",), password=...)."""

    def _make(email, role=UserRole.GENERAL, tags=(), password=DEFAULT_PASSWORD):
        user = User(email=email, password_hash=_hash(password), user_role=int(role))
        _db.session.add(user)
        _db.session.flush()
        for name in tags:
            tag = get_or_create_tag(_db.session, name)
            user.tag_assignments.append(UserTag(tag_id=tag.id))
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def auth_header():
    """auth_header(user) → {"Authorization": "Bearer <token>"}."""

    def _header(user):
        return {"Authorization": f"Bearer {generate_access_token(user)}"}

    return _header


@pytest.fixture()
def admin(make_user):
    return make_user("admin@example.com", UserRole.ADMIN)


@pytest.fixture()
def admin_headers(admin, auth_header):
    return auth_header(admin)


@pytest.fixture()
def manager(make_user):
    return make_user("manager@example.com", UserRole.TEST_MANAGER)


@pytest.fixture()
def manager_headers(manager, auth_header):
    return auth_header(manager)


def _principal(user):
    return Principal.from_user(user)


# ── Domain builders ──────────────────────────────────────────────────────


@pytest.fixture()
def make_group():
    """Factory: make_group(creator, tags=[("body", 1)], **fields) via the service."""

    def _make(creator, tags=(), **fields):
        bindings = []
        for name, test_role in tags:
            tag = get_or_create_tag(_db.session, name)
            bindings.append({"tag_id": tag.id, "test_role": test_role})
        _db.session.commit()
        data = {"oem": "ACME", "model": "X1", "tags": bindings}
        data.update(fields)
        return test_group_service.create_group(data, _principal(creator))

    return _make


@pytest.fixture()
def make_case():
    """Factory: make_case(group_id, tid, creator, contents=3) via the service."""

    def _make(test_group_id, tid, creator, contents=3):
        data = {
            "tid": tid,
            "first_layer": "Powertrain",
            "contents": [
                {"test_case_no": no, "test_case": f"step {no}", "expected_value": f"value {no}"}
                for no in range(1, contents + 1)
            ],
        }
        return test_case_service.create_case(test_group_id, data, _principal(creator))

    return _make
