# collegenews/tests/test_tracker.py
import threading
import time

from apscheduler.schedulers.background import BackgroundScheduler

from collegenews.api.main import SCHEDULER_JOB_DEFAULTS
from collegenews.errors import PersistenceError
from collegenews.notifier.news_notifier import Notifier
from collegenews.storage.models import Subscriber, SubscriberState
from collegenews.tracker.news_tracker import CycleStatus, NewsTracker, detect_new_items

T1 = {"title": "T1", "link": "https://college.example.edu/l1"}
T2 = {"title": "T2", "link": "https://college.example.edu/l2"}
T3 = {"title": "T3", "link": "https://college.example.edu/l3"}


def _subscribe(repo, *emails):
    for e in emails:
        repo.insert(Subscriber(email=e, state=SubscriberState.active, created_at="2026-01-01T00:00:00+00:00"))


def test_detect_new_items_by_link_only():
    known = {T1["link"]}
    renamed = {"title": "T1 (updated)", "link": T1["link"]}
    assert detect_new_items([renamed, T2], known) == [T2]
    assert detect_new_items([{"title": "no link"}], set()) == []

def test_first_cycle_then_incremental_delta(tracker, feed, news_repo, subscriber_repo, mailer):
    _subscribe(subscriber_repo, "a@example.com", "b@example.com")

    feed.items = [T1, T2]
    r1 = tracker.run_cycle()
    assert tracker.drain(5)
    assert r1.status == CycleStatus.updated
    assert [n.link for n in r1.new_items] == [T1["link"], T2["link"]]
    assert [n.link for n in news_repo.read_all()] == [T1["link"], T2["link"]]
    # uma mensagem por assinante, com os dois itens
    assert sorted(m.to for m in mailer.sent) == ["a@example.com", "b@example.com"]
    for m in mailer.sent:
        assert "T1" in m.text and "T2" in m.text

    mailer.sent.clear()
    feed.items = [T1, T2, T3]
    r2 = tracker.run_cycle()
    assert tracker.drain(5)
    assert [n.link for n in r2.new_items] == [T3["link"]]
    assert [n.link for n in news_repo.read_all()] == [T1["link"], T2["link"], T3["link"]]
    for m in mailer.sent:
        assert T3["link"] in m.text
        assert T1["link"] not in m.text

def test_unchanged_source_is_idempotent(tracker, feed, news_repo, subscriber_repo, mailer, monkeypatch):
    _subscribe(subscriber_repo, "a@example.com")
    feed.items = [T1, T2]
    tracker.run_cycle()
    assert tracker.drain(5)
    sent_before = len(mailer.sent)

    writes = []
    original = news_repo.replace_all
    monkeypatch.setattr(news_repo, "replace_all", lambda *a, **k: writes.append(1) or original(*a, **k))

    r = tracker.run_cycle()
    assert r.status == CycleStatus.unchanged
    assert writes == []
    assert len(mailer.sent) == sent_before

def test_title_change_on_known_link_is_not_new(tracker, feed, mailer, subscriber_repo):
    _subscribe(subscriber_repo, "a@example.com")
    feed.items = [T1]
    tracker.run_cycle()
    assert tracker.drain(5)
    mailer.sent.clear()

    feed.items = [{"title": "T1 renamed", "link": T1["link"]}]
    assert tracker.run_cycle().status == CycleStatus.unchanged
    assert mailer.sent == []

def test_empty_extraction_never_wipes_snapshot(tracker, feed, news_repo):
    feed.items = [T1, T2]
    tracker.run_cycle()

    feed.items = []
    assert tracker.run_cycle().status == CycleStatus.empty
    assert len(news_repo.read_all()) == 2

def test_fetch_failure_ends_cycle_quietly(tracker, feed, news_repo, mailer):
    feed.error = "connection refused"
    r = tracker.run_cycle()
    assert r.status == CycleStatus.fetch_failed
    assert news_repo.read_all() == []
    assert mailer.attempts == []
    assert tracker.last_updated is not None

def test_persistence_failure_aborts_before_notification(tracker, feed, news_repo, subscriber_repo, mailer, monkeypatch):
    _subscribe(subscriber_repo, "a@example.com")

    def broken(*a, **k):
        raise PersistenceError("disk full")
    monkeypatch.setattr(news_repo, "replace_all", broken)

    feed.items = [T1]
    r = tracker.run_cycle()
    assert r.status == CycleStatus.persist_failed
    assert mailer.attempts == []

    # store voltou: o item ainda é novo e é notificado uma vez
    monkeypatch.undo()
    r = tracker.run_cycle()
    assert r.status == CycleStatus.updated
    assert tracker.drain(5)
    assert len(mailer.sent) == 1

def test_partial_send_failure_does_not_stop_other_recipients(tracker, feed, subscriber_repo, mailer):
    _subscribe(subscriber_repo, "one@example.com", "two@example.com", "three@example.com")
    mailer.fail_for = {"two@example.com"}

    feed.items = [T1]
    r = tracker.run_cycle()
    assert r.status == CycleStatus.updated
    assert tracker.drain(5)
    assert [(s.email, s.ok) for s in r.sends] == [
        ("one@example.com", True),
        ("two@example.com", False),
        ("three@example.com", True),
    ]
    assert {m.to for m in mailer.sent} == {"one@example.com", "three@example.com"}

def test_first_seen_at_is_kept_for_links_still_on_page(tracker, feed, news_repo):
    feed.items = [T1]
    tracker.run_cycle()
    first = {n.link: n.first_seen_at for n in news_repo.read_all()}

    feed.items = [T1, T2]
    tracker.run_cycle()
    after = {n.link: n.first_seen_at for n in news_repo.read_all()}
    assert after[T1["link"]] == first[T1["link"]]

def test_overlapping_cycle_is_skipped_while_store_is_being_updated(tracker, feed):
    entered = threading.Event()
    release = threading.Event()

    class SlowFeed:
        def fetch(self):
            entered.set()
            release.wait(5)
            return [T1]

    tracker.feed = SlowFeed()
    results = []
    worker = threading.Thread(target=lambda: results.append(tracker.run_cycle()))
    worker.start()
    assert entered.wait(5)

    assert tracker.run_cycle().status == CycleStatus.skipped
    release.set()
    worker.join(5)
    assert results[0].status == CycleStatus.updated


class BlockingMailer:
    """Segura cada envio até `release` ser liberado."""

    def __init__(self):
        self.sent = []
        self.started = threading.Event()
        self.release = threading.Event()

    def send(self, message):
        self.started.set()
        self.release.wait(10)
        self.sent.append(message)


class GrowingFeed:
    """Cada fetch traz um link novo."""

    def __init__(self):
        self.calls = 0

    def fetch(self):
        self.calls += 1
        return [{"title": f"T{self.calls}", "link": f"https://college.example.edu/n{self.calls}"}]


def _blocking_tracker(news_repo, subscriber_repo, signer):
    mailer = BlockingMailer()
    notifier = Notifier(mailer, signer, sender="news@college.example.edu", public_base_url="https://news.example.org")
    return NewsTracker(GrowingFeed(), news_repo, subscriber_repo, notifier), mailer

def test_cycle_returns_before_slow_sends_finish(news_repo, subscriber_repo, signer):
    _subscribe(subscriber_repo, "a@example.com")
    tracker, mailer = _blocking_tracker(news_repo, subscriber_repo, signer)

    r = tracker.run_cycle()
    assert r.status == CycleStatus.updated
    assert mailer.started.wait(5)
    assert r.sends == []
    assert tracker.drain(0.1) is False

    mailer.release.set()
    assert tracker.drain(5)
    assert [(s.email, s.ok) for s in r.sends] == [("a@example.com", True)]
    tracker.shutdown()

def test_scheduler_keeps_ticking_while_sends_are_slow(news_repo, subscriber_repo, signer):
    _subscribe(subscriber_repo, "a@example.com")
    tracker, mailer = _blocking_tracker(news_repo, subscriber_repo, signer)

    scheduler = BackgroundScheduler(job_defaults=SCHEDULER_JOB_DEFAULTS)
    scheduler.add_job(tracker.run_cycle, "interval", seconds=0.1, id="check_news")
    scheduler.start()
    try:
        assert mailer.started.wait(5)
        deadline = time.monotonic() + 5
        while tracker.feed.calls < 3 and time.monotonic() < deadline:
            time.sleep(0.05)
        # o primeiro envio ainda está preso e os ticks continuam
        assert tracker.feed.calls >= 3
        assert mailer.sent == []
    finally:
        scheduler.shutdown(wait=True)
        mailer.release.set()

    assert tracker.drain(10)
    links = [n.link for n in news_repo.read_all()]
    # cada ciclo trocou o snapshot e enfileirou seu próprio fan-out
    assert len(mailer.sent) == tracker.feed.calls
    assert mailer.sent[-1].to == "a@example.com"
    assert links[-1] in mailer.sent[-1].text
    tracker.shutdown()
