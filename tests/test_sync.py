import json

import pytest

from offline_worker.http import ResponseSnapshot
from offline_worker.sync import (
    OutboxQueue,
    SearchHistoryQueue,
    drain_outbox,
    sync_search_history,
)

from conftest import FakeFetcher

ENDPOINT = "/api/search/sync-history"


@pytest.fixture
def queue(session_factory):
    return SearchHistoryQueue(session_factory)


@pytest.fixture
def outbox(session_factory):
    return OutboxQueue(session_factory)


def test_queue_ids_autoincrement(queue):
    a = queue.add({"query": "tシャツ"})
    b = queue.add({"query": "sneakers"})
    assert b.id == a.id + 1
    assert [r.synced for r in queue.get_all()] == [False, False]


def test_two_records_one_post_then_flagged(queue):
    queue.add({"query": "harajuku"})
    queue.add({"query": "designer jobs", "filters": {"type": "full-time"}})
    fetcher = FakeFetcher().add(ENDPOINT, body='{"success": true}', content_type="application/json")

    result = sync_search_history(queue, fetcher, ENDPOINT)

    assert len(fetcher.calls) == 1
    sent = fetcher.calls[0]
    assert sent.method == "POST"
    assert sent.url == ENDPOINT
    body = json.loads(sent.body)
    assert [s["query"] for s in body["searches"]] == ["harajuku", "designer jobs"]
    assert result.synced == 2 and result.ok
    assert queue.get_all() == []
    assert all(r.synced for r in queue.get_all(unsynced_only=False))


def test_nothing_pending_sends_nothing(queue):
    fetcher = FakeFetcher()
    result = sync_search_history(queue, fetcher, ENDPOINT)
    assert fetcher.calls == []
    assert result.submitted == 0


def test_network_failure_leaves_records_unsynced(queue):
    queue.add({"query": "events"})
    fetcher = FakeFetcher(offline=True)

    result = sync_search_history(queue, fetcher, ENDPOINT)

    assert not result.ok
    assert len(queue.get_all()) == 1


def test_rejected_submission_leaves_records_unsynced(queue):
    queue.add({"query": "events"})
    fetcher = FakeFetcher().add(ENDPOINT, body="nope", status=500)

    result = sync_search_history(queue, fetcher, ENDPOINT)

    assert result.error == "HTTP 500"
    assert len(queue.get_all()) == 1


def test_retry_after_failure_resubmits(queue):
    queue.add({"query": "events"})
    fetcher = FakeFetcher(offline=True)
    sync_search_history(queue, fetcher, ENDPOINT)

    fetcher.offline = False
    fetcher.add(ENDPOINT, body="{}")
    result = sync_search_history(queue, fetcher, ENDPOINT)

    assert result.synced == 1
    assert len(fetcher.calls) == 2


def test_synced_records_are_not_resent(queue):
    queue.add({"query": "one"})
    fetcher = FakeFetcher().add(ENDPOINT, body="{}")
    sync_search_history(queue, fetcher, ENDPOINT)
    queue.add({"query": "two"})

    sync_search_history(queue, fetcher, ENDPOINT)

    body = json.loads(fetcher.calls[-1].body)
    assert [s["query"] for s in body["searches"]] == ["two"]


def test_drain_outbox_resubmits_and_removes(outbox):
    outbox.add("/api/posts", body=b'{"title": "a"}')
    outbox.add("/api/reviews", body=b'{"stars": 5}')
    fetcher = FakeFetcher()
    fetcher.routes["/api/posts"] = ResponseSnapshot(status=201, body=b"{}")
    fetcher.routes["/api/reviews"] = ResponseSnapshot(status=201, body=b"{}")

    result = drain_outbox(outbox, fetcher)

    assert result.synced == 2
    assert len(outbox) == 0
    assert [c.method for c in fetcher.calls] == ["POST", "POST"]


def test_drain_outbox_stops_when_offline(outbox):
    outbox.add("/api/posts", body=b"{}")
    outbox.add("/api/reviews", body=b"{}")

    result = drain_outbox(outbox, FakeFetcher(offline=True))

    assert result.submitted == 1
    assert result.synced == 0
    assert len(outbox) == 2


def test_drain_outbox_drops_permanently_rejected_writes(outbox):
    bad = outbox.add("/api/posts", body=b"{}")
    throttled = outbox.add("/api/reviews", body=b"{}")
    down = outbox.add("/api/jobs", body=b"{}")
    fetcher = FakeFetcher()
    fetcher.routes["/api/posts"] = ResponseSnapshot(status=422, body=b"{}")
    fetcher.routes["/api/reviews"] = ResponseSnapshot(status=429, body=b"{}")
    fetcher.routes["/api/jobs"] = ResponseSnapshot(status=503, body=b"{}")

    result = drain_outbox(outbox, fetcher)

    assert result.dropped == [bad]
    assert result.synced == 0
    assert [w.id for w in outbox.get_all()] == [throttled, down]

    drain_outbox(outbox, fetcher)
    assert [c.url for c in fetcher.calls].count("/api/posts") == 1
