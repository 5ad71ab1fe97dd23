"""Shared document store: a path-addressed tree with change notification.

``DocumentStore`` is the shared backend every client talks to. Each client
holds its own ``StoreClient``, which represents one transport connection:
it owns that client's subscriptions and deferred on-disconnect writes, and
it becomes unavailable once disconnected.
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Tuple

from .errors import StorageUnavailable

logger = logging.getLogger(__name__)

Path = Tuple[str, ...]
Listener = Callable[[Any], None]
Unsubscribe = Callable[[], None]


def split_path(path: str) -> Path:
    return tuple(part for part in path.strip("/").split("/") if part)


def _overlaps(a: Path, b: Path) -> bool:
    n = min(len(a), len(b))
    return a[:n] == b[:n]


@dataclass
class _Subscription:
    id: int
    path: Path
    callback: Listener
    last: Any = field(default=None, repr=False)


class DocumentStore:
    """Thread-safe in-memory document tree.

    Writes are unconditional overwrites (last write wins) except through
    ``transaction``. Listeners are called after each commit, in commit order,
    with a private copy of the subtree they watch. A listener only hears about
    commits that actually change its subtree.
    """

    def __init__(self) -> None:
        self._root: Dict[str, Any] = {}
        self._lock = threading.RLock()
        self._subscriptions: Dict[int, _Subscription] = {}
        self._ids = itertools.count(1)
        self._pending: Deque[Tuple[_Subscription, Any]] = deque()
        self._dispatching = False

    # ---- reads ----

    def get(self, path: str) -> Any:
        with self._lock:
            return copy.deepcopy(self._node(split_path(path)))

    # ---- writes ----

    def set(self, path: str, value: Any) -> None:
        parts = split_path(path)
        with self._lock:
            self._assign(parts, copy.deepcopy(value))
            self._commit([parts])

    def update(self, updates: Mapping[str, Any]) -> None:
        """Apply several path writes as a single commit."""
        changed: List[Path] = []
        with self._lock:
            for path, value in updates.items():
                parts = split_path(path)
                self._assign(parts, copy.deepcopy(value))
                changed.append(parts)
            self._commit(changed)

    def transaction(
        self, path: str, update_fn: Callable[[Any], Any]
    ) -> Tuple[bool, Any]:
        """Atomically replace the value at ``path`` with ``update_fn(current)``.

        ``update_fn`` returning ``None`` aborts without writing. Exceptions
        raised by ``update_fn`` propagate and leave the store untouched.
        Returns ``(committed, value)``.
        """
        parts = split_path(path)
        with self._lock:
            current = copy.deepcopy(self._node(parts))
            result = update_fn(current)
            if result is None:
                return False, copy.deepcopy(self._node(parts))
            self._assign(parts, copy.deepcopy(result))
            self._commit([parts])
            return True, copy.deepcopy(result)

    # ---- subscriptions ----

    def listen(self, path: str, callback: Listener) -> int:
        """Register ``callback`` and deliver the current value immediately."""
        parts = split_path(path)
        with self._lock:
            sub = _Subscription(id=next(self._ids), path=parts, callback=callback)
            sub.last = copy.deepcopy(self._node(parts))
            self._subscriptions[sub.id] = sub
            self._pending.append((sub, sub.last))
            self._drain()
            return sub.id

    def unlisten(self, subscription_id: int) -> None:
        with self._lock:
            self._subscriptions.pop(subscription_id, None)

    # ---- helpers ----

    def _node(self, parts: Path) -> Any:
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def _assign(self, parts: Path, value: Any) -> None:
        if not parts:
            self._root = value if isinstance(value, dict) else {}
            return
        if value is None:
            self._delete(parts)
            return
        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value

    def _delete(self, parts: Path) -> None:
        trail: List[Tuple[Dict[str, Any], str]] = []
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return
            trail.append((node, part))
            node = node[part]
        parent, key = trail.pop()
        del parent[key]
        # Prune parents left empty, the way a null write collapses a subtree
        while trail and not parent:
            parent, key = trail.pop()
            del parent[key]

    def _commit(self, changed: List[Path]) -> None:
        for sub in list(self._subscriptions.values()):
            if not any(_overlaps(sub.path, parts) for parts in changed):
                continue
            value = copy.deepcopy(self._node(sub.path))
            if value == sub.last:
                continue
            sub.last = value
            self._pending.append((sub, value))
        self._drain()

    def _drain(self) -> None:
        # Writes made from inside a listener queue up behind the current
        # delivery instead of overtaking it.
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._pending:
                sub, value = self._pending.popleft()
                if sub.id not in self._subscriptions:
                    continue
                try:
                    sub.callback(copy.deepcopy(value))
                except Exception:
                    logger.exception("Listener on /%s failed", "/".join(sub.path))
        finally:
            self._dispatching = False


class OnDisconnect:
    """Deferred write armed on a client connection."""

    def __init__(self, client: "StoreClient", path: str):
        self._client = client
        self._path = path

    def set(self, value: Any) -> None:
        self._client._arm(self._path, value)

    def cancel(self) -> None:
        self._client._disarm(self._path)


class StoreClient:
    """One client's connection to a ``DocumentStore``.

    A client built without a store is permanently unavailable: operations that
    must not silently fail raise ``StorageUnavailable``.
    """

    def __init__(
        self,
        store: Optional[DocumentStore],
        name: str = "client",
        reason: str = "",
    ):
        self._store = store
        self.name = name
        self._reason = reason or "Store handle is not initialized"
        self._connected = store is not None
        self._deferred: Dict[str, Any] = {}
        self._subscriptions: Dict[int, str] = {}

    @classmethod
    def unavailable(cls, reason: str = "", name: str = "client") -> "StoreClient":
        return cls(None, name=name, reason=reason)

    @property
    def available(self) -> bool:
        return self._store is not None and self._connected

    def _require(self) -> DocumentStore:
        if self._store is None:
            raise StorageUnavailable(self._reason)
        if not self._connected:
            raise StorageUnavailable(f"Client {self.name!r} is disconnected")
        return self._store

    # ---- request/response operations ----

    async def read(self, path: str) -> Any:
        return self._require().get(path)

    async def write(self, path: str, value: Any) -> None:
        self._require().set(path, value)

    async def multi_update(self, updates: Mapping[str, Any]) -> None:
        self._require().update(updates)

    async def transaction(
        self, path: str, update_fn: Callable[[Any], Any]
    ) -> Tuple[bool, Any]:
        return self._require().transaction(path, update_fn)

    # ---- push ----

    def subscribe(self, path: str, on_change: Listener) -> Unsubscribe:
        store = self._require()
        subscription_id = store.listen(path, on_change)
        self._subscriptions[subscription_id] = path

        def unsubscribe() -> None:
            if self._subscriptions.pop(subscription_id, None) is not None:
                store.unlisten(subscription_id)

        return unsubscribe

    def on_disconnect(self, path: str) -> OnDisconnect:
        self._require()
        return OnDisconnect(self, path)

    def _arm(self, path: str, value: Any) -> None:
        self._require()
        self._deferred[path] = value

    def _disarm(self, path: str) -> None:
        self._deferred.pop(path, None)

    # ---- lifecycle ----

    def disconnect(self) -> None:
        """Drop the connection, committing armed on-disconnect writes once."""
        store = self._store
        if store is None or not self._connected:
            return
        self._connected = False
        for subscription_id in list(self._subscriptions):
            store.unlisten(subscription_id)
        self._subscriptions.clear()
        deferred, self._deferred = self._deferred, {}
        if deferred:
            logger.info(
                "Client %s disconnected, firing %d deferred write(s)",
                self.name,
                len(deferred),
            )
            store.update(deferred)
