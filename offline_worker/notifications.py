# offline_worker/notifications.py - typed push payloads + notification click routing
import json
import logging
import time
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from offline_worker.errors import PayloadError

logger = logging.getLogger(__name__)


class NotificationAction(BaseModel):
    action: str
    title: str
    icon: Optional[str] = None


def _default_actions() -> List[NotificationAction]:
    return [
        NotificationAction(action="view", title="詳細を見る", icon="/icons/checkmark.png"),
        NotificationAction(action="dismiss", title="閉じる", icon="/icons/xmark.png"),
    ]


class NotificationOptions(BaseModel):
    title: str = "原宿クリエイティブコミュニティ"
    body: str = "新しいお知らせがあります"
    icon: str = "/icons/icon-192x192.png"
    badge: str = "/icons/badge-72x72.png"
    tag: str = "hcc-notification"
    vibrate: List[int] = Field(default_factory=lambda: [200, 100, 200])
    actions: List[NotificationAction] = Field(default_factory=_default_actions)
    data: Dict[str, Any] = Field(default_factory=dict)


class PartialNotification(BaseModel):
    """Server-sent overrides; every field is optional, unknown keys are dropped."""

    title: Optional[str] = None
    body: Optional[str] = None
    icon: Optional[str] = None
    badge: Optional[str] = None
    tag: Optional[str] = None
    vibrate: Optional[List[int]] = None
    actions: Optional[List[NotificationAction]] = None
    data: Optional[Dict[str, Any]] = None


def parse_push_payload(data: Union[bytes, str, None]) -> PartialNotification:
    """
    Push data -> overrides:
      - absent/empty          -> no overrides (defaults win)
      - JSON object           -> validated field by field
      - anything else         -> used verbatim as the body text
    A JSON object whose fields have the wrong shape raises PayloadError.
    """
    if data is None:
        return PartialNotification()
    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
    if text.strip() == "":
        return PartialNotification()

    try:
        parsed = json.loads(text)
    except ValueError:
        return PartialNotification(body=text)

    if not isinstance(parsed, dict):
        return PartialNotification(body=text)

    try:
        return PartialNotification.model_validate(parsed)
    except ValidationError as e:
        raise PayloadError(f"Invalid notification payload: {e.errors()[0]['msg']}") from e


def merge_notification(defaults: NotificationOptions, partial: PartialNotification) -> NotificationOptions:
    overrides = partial.model_dump(exclude_none=True)
    merged = defaults.model_copy(deep=True)
    for name, value in overrides.items():
        if name == "actions":
            value = [NotificationAction.model_validate(a) for a in value]
        elif name == "data":
            value = {**merged.data, **value}
        setattr(merged, name, value)
    merged.data.setdefault("dateOfArrival", int(time.time() * 1000))
    merged.data.setdefault("primaryKey", 1)
    return merged


class NotificationHooks:
    def __init__(self, display, clients, defaults: NotificationOptions, root_url: str = "/"):
        self.display = display
        self.clients = clients
        self.defaults = defaults
        self.root_url = root_url

    def on_push(self, data: Union[bytes, str, None]) -> NotificationOptions:
        try:
            partial = parse_push_payload(data)
        except PayloadError as e:
            logger.warning("[PUSH] %s; falling back to default notification", e.message)
            partial = PartialNotification()
        options = merge_notification(self.defaults, partial)
        self.display.show(options)
        logger.info("[PUSH] displayed notification tag=%s", options.tag)
        return options

    def on_notification_click(self, notification, action: str = ""):
        notification.close()
        if action == "dismiss":
            return None

        for client in self.clients.match_all():
            if client.url == self.root_url:
                return self.clients.focus(client)
        return self.clients.open_window(self.root_url)
