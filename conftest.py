"""
Common test fixtures for the messaging backend.

Provides users, a JWT-authenticated API client, and a messaging service
wired to a fresh retention configuration and a temporary media storage
so tests never share retention state.
"""
import pytest
from django.core.cache import cache
from django.core.files.storage import FileSystemStorage
from rest_framework.test import APIClient


def _create_user(username, **extra):
    from django.contrib.auth.models import User

    return User.objects.create_user(
        username=username, password="pass12345", email=f"{username}@example.com", **extra
    )


@pytest.fixture
def user(db):
    """Create a test user."""
    return _create_user("u1")


@pytest.fixture
def other_user(db):
    return _create_user("u2")


@pytest.fixture
def third_user(db):
    return _create_user("u3")


@pytest.fixture
def staff_user(db):
    return _create_user("admin", is_staff=True)


def _authenticate(client, username):
    resp = client.post(
        "/api/auth/token/",
        {"username": username, "password": "pass12345"},
        format="json",
    )
    assert resp.status_code == 200
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {resp.json()['access']}")
    return client


@pytest.fixture
def auth_client(db, user):
    """Authenticate an API client as ``user`` using JWT tokens."""
    return _authenticate(APIClient(), user.username)


@pytest.fixture
def staff_client(db, staff_user):
    return _authenticate(APIClient(), staff_user.username)


@pytest.fixture
def retention_config():
    from messaging.retention import RetentionConfig

    return RetentionConfig(count=3, enabled=True)


@pytest.fixture
def media_store(tmp_path):
    from messaging.stores import MediaStore

    return MediaStore(FileSystemStorage(location=tmp_path, base_url="/media/"))


@pytest.fixture
def messaging_service(db, retention_config, media_store, monkeypatch):
    """The service the views and tasks use, rebuilt for every test."""
    from messaging import services

    service = services.build_messaging_service(config=retention_config, media_store=media_store)
    monkeypatch.setattr(services, "get_messaging_service", lambda: service)
    return service


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()
