# offline_worker/clients.py - in-process notification display + window client registry
import itertools
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from offline_worker.notifications import NotificationOptions


@dataclass
class Notification:
    id: int
    options: NotificationOptions
    closed: bool = False

    @property
    def tag(self) -> str:
        return self.options.tag

    def close(self):
        self.closed = True

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "closed": self.closed, **self.options.model_dump()}


class NotificationCenter:
    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._items: List[Notification] = []

    def show(self, options: NotificationOptions) -> Notification:
        with self._lock:
            # same tag replaces the previous notification
            self._items = [n for n in self._items if n.tag != options.tag or n.closed]
            n = Notification(id=next(self._ids), options=options)
            self._items.append(n)
            return n

    def list(self, include_closed: bool = False) -> List[Notification]:
        with self._lock:
            return [n for n in self._items if include_closed or not n.closed]

    def get(self, tag: str) -> Optional[Notification]:
        with self._lock:
            for n in reversed(self._items):
                if n.tag == tag and not n.closed:
                    return n
        return None


@dataclass
class WindowClient:
    id: int
    url: str
    focused: bool = False
    controlled: bool = False
    messages: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "focused": self.focused,
            "controlled": self.controlled,
            "messages": list(self.messages),
        }


class WindowClients:
    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._clients: List[WindowClient] = []

    def register(self, url: str) -> WindowClient:
        with self._lock:
            c = WindowClient(id=next(self._ids), url=url)
            self._clients.append(c)
            return c

    def match_all(self) -> List[WindowClient]:
        with self._lock:
            return list(self._clients)

    def open_window(self, url: str) -> WindowClient:
        c = self.register(url)
        return self.focus(c)

    def focus(self, client: WindowClient) -> WindowClient:
        with self._lock:
            for c in self._clients:
                c.focused = c.id == client.id
            return client

    def claim(self) -> int:
        with self._lock:
            for c in self._clients:
                c.controlled = True
            return len(self._clients)

    def post_message(self, message: Dict[str, Any]) -> int:
        with self._lock:
            for c in self._clients:
                c.messages.append(dict(message))
            return len(self._clients)
