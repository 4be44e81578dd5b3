# collegenews/tests/conftest.py
from datetime import timedelta

import pytest

from collegenews.errors import FetchError, SendError
from collegenews.feeds.base import BaseFeed
from collegenews.notifier.news_notifier import Notifier
from collegenews.storage.document_store import DocumentStore
from collegenews.storage.repository import NewsRepository, SubscriberRepository
from collegenews.subscriptions.lifecycle import SubscriptionManager
from collegenews.subscriptions.tokens import TokenSigner
from collegenews.tracker.news_tracker import NewsTracker

BASE_URL = "https://college.example.edu/"


class FakeMailer:
    """Guarda as mensagens; `fail_for` simula falha por destinatário."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.sent = []
        self.attempts = []

    def send(self, message):
        self.attempts.append(message.to)
        if message.to in self.fail_for:
            raise SendError(f"smtp refused {message.to}")
        self.sent.append(message)

    def to(self, email):
        return [m for m in self.sent if m.to == email]


class FakeFeed(BaseFeed):
    def __init__(self, items=None, error=None):
        self.items = items or []
        self.error = error
        self.calls = 0

    def fetch(self):
        self.calls += 1
        if self.error:
            raise FetchError(self.error)
        return [dict(i) for i in self.items]


class FakeCaptcha:
    def __init__(self, ok=True):
        self.ok = ok
        self.seen = []

    def verify(self, token, remote_ip=None):
        self.seen.append(token)
        return self.ok


class FakeMx:
    def __init__(self, good_domains=("example.com", "college.example.edu")):
        self.good_domains = set(good_domains)

    def has_mx(self, domain):
        return domain in self.good_domains


@pytest.fixture()
def store(tmp_path):
    return DocumentStore(str(tmp_path / "data"))

@pytest.fixture()
def news_repo(store):
    return NewsRepository(store)

@pytest.fixture()
def subscriber_repo(store):
    return SubscriberRepository(store)

@pytest.fixture()
def signer():
    return TokenSigner("test-secret", verify_ttl=timedelta(minutes=15), unsubscribe_ttl=timedelta(days=30))

@pytest.fixture()
def mailer():
    return FakeMailer()

@pytest.fixture()
def notifier(mailer, signer):
    return Notifier(mailer, signer, sender="news@college.example.edu", public_base_url="https://news.example.org", max_workers=4)

@pytest.fixture()
def feed():
    return FakeFeed()

@pytest.fixture()
def tracker(feed, news_repo, subscriber_repo, notifier):
    return NewsTracker(feed, news_repo, subscriber_repo, notifier)

@pytest.fixture()
def captcha():
    return FakeCaptcha()

@pytest.fixture()
def manager(subscriber_repo, signer, notifier, captcha):
    return SubscriptionManager(subscriber_repo, signer, notifier, captcha, mx_checker=FakeMx())

@pytest.fixture()
def app(monkeypatch, news_repo, subscriber_repo, tracker, manager):
    # Patches para impedir network/scheduler no startup
    from collegenews.api import main as api_main

    monkeypatch.setattr(api_main, "check_for_new_news", lambda: None, raising=True)

    class DummyScheduler:
        def add_job(self, *a, **k): pass
        def start(self): pass
        def shutdown(self, wait=False): pass
    monkeypatch.setattr(api_main, "scheduler", DummyScheduler(), raising=True)

    monkeypatch.setattr(api_main, "news_repo", news_repo, raising=True)
    monkeypatch.setattr(api_main, "subscriber_repo", subscriber_repo, raising=True)
    monkeypatch.setattr(api_main, "tracker", tracker, raising=True)
    monkeypatch.setattr(api_main, "subscriptions", manager, raising=True)
    return api_main.app

@pytest.fixture()
def client(app):
    from fastapi.testclient import TestClient
    # Usa contexto para garantir lifespan mas com patches aplicados
    with TestClient(app) as c:
        yield c
