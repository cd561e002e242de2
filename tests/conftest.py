import pytest
from faker import Faker

from siteapi import create_app
from siteapi.admission import MemoryCooldownCache, MemoryWindowStore
from siteapi.config import TestingConfig

from fakes import FakeReputation, FakeTableClient, RecordingMailer, RecordingNotifier

# Initialize Faker for generating test data
fake = Faker()

ADMIN_TOKEN = TestingConfig.ADMIN_TOKEN


# Custom pytest marks for organizing tests
def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires external services)"
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow-running"
    )
    config.addinivalue_line(
        "markers",
        "admin: mark test as admin-endpoint related"
    )
    config.addinivalue_line(
        "markers",
        "payment: mark test as payment-related"
    )


@pytest.fixture()
def tables():
    return FakeTableClient()


@pytest.fixture()
def reputation():
    return FakeReputation()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def mailer():
    return RecordingMailer()


@pytest.fixture()
def window_store():
    return MemoryWindowStore()


@pytest.fixture()
def app(tables, reputation, notifier, mailer, window_store):
    """Testing app whose collaborators are in-memory fakes"""
    app = create_app(
        "testing",
        tables=tables,
        reputation=reputation,
        notifier=notifier,
        mailer=mailer,
        window_store=window_store,
        cooldowns=MemoryCooldownCache(),
    )
    with app.app_context():
        yield app


@pytest.fixture()
def services(app):
    return app.extensions["siteapi"]


@pytest.fixture()
def client(app):
    """Test client with helpers for admin and client-address headers"""
    client = app.test_client()

    def _headers(kwargs, token=None, ip=None):
        headers = dict(kwargs.pop("headers", {}) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if ip:
            headers["X-Forwarded-For"] = ip
        return headers

    def authenticated_get(self, url, token=ADMIN_TOKEN, **kwargs):
        return self.get(url, headers=_headers(kwargs, token=token), **kwargs)

    def authenticated_post(self, url, token=ADMIN_TOKEN, **kwargs):
        return self.post(url, headers=_headers(kwargs, token=token), **kwargs)

    def authenticated_delete(self, url, token=ADMIN_TOKEN, **kwargs):
        return self.delete(url, headers=_headers(kwargs, token=token), **kwargs)

    def authenticated_patch(self, url, token=ADMIN_TOKEN, **kwargs):
        return self.patch(url, headers=_headers(kwargs, token=token), **kwargs)

    def post_from(self, url, ip, **kwargs):
        return self.post(url, headers=_headers(kwargs, ip=ip), **kwargs)

    client.authenticated_get = authenticated_get.__get__(client)
    client.authenticated_post = authenticated_post.__get__(client)
    client.authenticated_delete = authenticated_delete.__get__(client)
    client.authenticated_patch = authenticated_patch.__get__(client)
    client.post_from = post_from.__get__(client)

    return client


@pytest.fixture
def public_ip():
    """A globally routable IPv4 address outside the spam ranges"""
    while True:
        ip = fake.ipv4_public()
        if not ip.startswith(("45.155.", "185.220.")):
            return ip
