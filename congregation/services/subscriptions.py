"""Live query subscriptions and per-view subscription groups"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..errors import SubscriptionError
from .document_store import DocumentStore, Snapshot

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """One live query delivering snapshots on the owning event loop.

    The store may call back from any thread; delivery is marshalled onto the
    loop that created the subscription. Snapshots older than the last one
    delivered are dropped, so consumers only ever move forward.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        where=None,
        order_by: Optional[str] = None,
        *,
        key: Optional[str] = None,
        sink: Optional[Callable[["Subscription", Any], None]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.store = store
        self.collection = collection
        self.key = key or collection
        self._loop = loop or asyncio.get_running_loop()
        self._sink = sink
        self._queue: asyncio.Queue = asyncio.Queue()
        self._cancelled = False
        self._last_version = -1
        self._registration = store.subscribe(
            collection,
            self._on_snapshot,
            where=where,
            order_by=order_by,
            on_error=self._on_error,
        )
        logger.debug(f"Subscribed to {collection} as '{self.key}'")

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def last_version(self) -> int:
        return self._last_version

    def cancel(self) -> bool:
        """Stop delivery and release the store listener.

        Safe to call again; only the first call releases anything.
        """
        if self._cancelled:
            return False
        self._cancelled = True
        self._registration.remove()
        self._queue.put_nowait(_CLOSED)
        logger.debug(f"Cancelled subscription '{self.key}' on {self.collection}")
        return True

    async def next(self) -> Snapshot:
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        if isinstance(item, SubscriptionError):
            raise item
        return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> Snapshot:
        return await self.next()

    # Store callbacks (any thread)

    def _on_snapshot(self, snapshot: Snapshot):
        try:
            self._loop.call_soon_threadsafe(self._accept, snapshot)
        except RuntimeError:
            # Owning loop is gone; nobody will ever read this subscription
            logger.warning(f"Event loop closed under subscription '{self.key}', releasing it")
            self._cancelled = True
            self._registration.remove()

    def _on_error(self, error: Exception):
        failure = SubscriptionError(f"Live updates for {self.collection} stopped: {error}")
        try:
            self._loop.call_soon_threadsafe(self._accept, failure)
        except RuntimeError:
            self._cancelled = True

    # Loop thread

    def _accept(self, item):
        if self._cancelled:
            return
        if isinstance(item, Snapshot):
            if item.version <= self._last_version:
                return
            self._last_version = item.version
        if self._sink is not None:
            self._sink(self, item)
        else:
            self._queue.put_nowait(item)


@dataclass
class ViewEvent:
    kind: str  # "snapshot", "error" or "command"
    key: Optional[str] = None
    payload: Any = None


class ViewSubscriptions:
    """All live queries owned by one view, merged into one view state.

    Snapshots from every subscription and commands posted by the client are
    serialized through a single queue, so the view handles one event at a
    time. State is kept per subscription key as ``{doc_id: document}`` and is
    replaced wholesale by each snapshot.

    Use as an async context manager; every subscription is cancelled when the
    block exits, whichever way it exits.
    """

    def __init__(self, store: DocumentStore, view_name: str):
        self.store = store
        self.view_name = view_name
        self.state: Dict[str, Dict[str, dict]] = {}
        self._subscriptions: Dict[str, Subscription] = {}
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    async def __aenter__(self) -> "ViewSubscriptions":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.cancel_all()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def keys(self) -> List[str]:
        return list(self._subscriptions)

    @property
    def ready(self) -> bool:
        """True once every open subscription has delivered its first snapshot"""
        return all(key in self.state for key in self._subscriptions)

    def is_open(self, key: str) -> bool:
        return key in self._subscriptions

    def open(self, key: str, collection: str, where=None, order_by: Optional[str] = None) -> Subscription:
        """Open (or replace) the subscription stored under ``key``"""
        if self._closed:
            raise SubscriptionError(f"View '{self.view_name}' is closed")
        if key in self._subscriptions:
            self.close(key)
        subscription = Subscription(
            self.store,
            collection,
            where=where,
            order_by=order_by,
            key=key,
            sink=self._on_item,
        )
        self._subscriptions[key] = subscription
        return subscription

    def close(self, key: str) -> bool:
        subscription = self._subscriptions.pop(key, None)
        self.state.pop(key, None)
        if subscription is None:
            return False
        return subscription.cancel()

    def cancel_all(self):
        for key in list(self._subscriptions):
            self.close(key)
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(("closed", None, None))
            logger.debug(f"View '{self.view_name}' released its subscriptions")

    def post(self, command: Any):
        """Queue a client command behind any pending snapshots"""
        if not self._closed:
            self._queue.put_nowait(("command", None, command))

    def documents(self, key: str) -> List[dict]:
        return list(self.state.get(key, {}).values())

    def document(self, key: str, doc_id: str) -> Optional[dict]:
        return self.state.get(key, {}).get(doc_id)

    async def next_event(self) -> ViewEvent:
        while True:
            kind, subscription, payload = await self._queue.get()
            if kind == "closed":
                self._queue.put_nowait((kind, None, None))
                raise StopAsyncIteration
            if kind == "command":
                return ViewEvent("command", payload=payload)

            # Drop anything still queued from a subscription that was closed
            if self._subscriptions.get(subscription.key) is not subscription:
                continue
            if isinstance(payload, SubscriptionError):
                self.close(subscription.key)
                return ViewEvent("error", subscription.key, payload)

            self.state[subscription.key] = {doc["id"]: doc for doc in payload.documents}
            return ViewEvent("snapshot", subscription.key, payload)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ViewEvent:
        return await self.next_event()

    def _on_item(self, subscription: Subscription, item):
        self._queue.put_nowait(("snapshot", subscription, item))
