import json

import pytest

from offline_worker.clients import NotificationCenter, WindowClients
from offline_worker.errors import PayloadError
from offline_worker.notifications import (
    NotificationHooks,
    NotificationOptions,
    PartialNotification,
    merge_notification,
    parse_push_payload,
)


@pytest.fixture
def hooks():
    return NotificationHooks(NotificationCenter(), WindowClients(), NotificationOptions(), root_url="/")


def test_absent_payload_uses_defaults():
    assert parse_push_payload(None) == PartialNotification()
    assert parse_push_payload(b"") == PartialNotification()


def test_plain_text_becomes_body():
    assert parse_push_payload(b"new event posted").body == "new event posted"


def test_json_scalar_is_treated_as_text():
    assert parse_push_payload("42").body == "42"


def test_json_object_fields_are_picked_up():
    partial = parse_push_payload(json.dumps({
        "title": "新着",
        "body": "イベントが追加されました",
        "actions": [{"action": "view", "title": "見る"}],
        "unknown": "ignored",
    }))
    assert partial.title == "新着"
    assert partial.actions[0].action == "view"
    assert partial.icon is None


def test_bad_actions_shape_is_rejected():
    with pytest.raises(PayloadError):
        parse_push_payload(json.dumps({"actions": [{"title": "missing action"}]}))
    with pytest.raises(PayloadError):
        parse_push_payload(json.dumps({"actions": "view"}))


def test_merge_overlays_only_given_fields():
    defaults = NotificationOptions()
    merged = merge_notification(defaults, PartialNotification(title="Hi", data={"url": "/events"}))

    assert merged.title == "Hi"
    assert merged.body == defaults.body
    assert merged.vibrate == [200, 100, 200]
    assert [a.action for a in merged.actions] == ["view", "dismiss"]
    assert merged.data["url"] == "/events"
    assert "dateOfArrival" in merged.data
    # defaults are not mutated
    assert defaults.data == {}


def test_push_displays_merged_notification(hooks):
    options = hooks.on_push(json.dumps({"body": "hello"}).encode())

    shown = hooks.display.list()
    assert len(shown) == 1
    assert shown[0].options.body == "hello"
    assert options.title == NotificationOptions().title


def test_push_with_invalid_payload_falls_back_to_defaults(hooks):
    options = hooks.on_push(json.dumps({"actions": 5}))
    assert options.body == NotificationOptions().body
    assert len(hooks.display.list()) == 1


def test_click_dismiss_only_closes(hooks):
    hooks.on_push(None)
    n = hooks.display.list()[0]

    assert hooks.on_notification_click(n, "dismiss") is None
    assert n.closed
    assert hooks.clients.match_all() == []


def test_click_view_opens_root_window(hooks):
    hooks.on_push(None)
    n = hooks.display.list()[0]

    client = hooks.on_notification_click(n, "view")

    assert n.closed
    assert client.url == "/"
    assert client.focused
    assert len(hooks.clients.match_all()) == 1


def test_click_body_reuses_existing_root_window(hooks):
    other = hooks.clients.register("/events.html")
    root = hooks.clients.register("/")
    hooks.on_push(None)

    client = hooks.on_notification_click(hooks.display.list()[0], "")

    assert client.id == root.id
    assert root.focused and not other.focused
    assert len(hooks.clients.match_all()) == 2


def test_click_does_not_reuse_window_at_other_url(hooks):
    hooks.clients.register("/?tab=2")
    hooks.on_push(None)

    client = hooks.on_notification_click(hooks.display.list()[0], "view")

    assert client.url == "/"
    assert len(hooks.clients.match_all()) == 2


def test_same_tag_replaces_notification():
    center = NotificationCenter()
    center.show(NotificationOptions(body="first"))
    center.show(NotificationOptions(body="second"))
    assert [n.options.body for n in center.list()] == ["second"]
