"""TinyDB document store with conditional field updates and live listeners

Collections are TinyDB tables holding schemaless documents keyed by a string
``id`` field. Every write runs under one re-entrant lock and bumps a store
version; listeners registered with :meth:`DocumentStore.subscribe` re-run
their query after each commit and receive a :class:`Snapshot` whenever their
result set changed. Fan-out happens inside the lock so snapshots leave the
store in commit order.
"""

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from tinydb import TinyDB, Query
from tinydb.storages import MemoryStorage

from .timeutil import isoformat, utcnow

logger = logging.getLogger(__name__)


FieldPath = Union[str, Tuple[str, ...]]


# =============================================================================
# Errors
# =============================================================================

class StoreError(Exception):
    """Base class for store failures"""


class StoreUnavailable(StoreError):
    """The store is closed or its storage could not be read or written"""


class DocumentNotFound(StoreError):
    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection}/{doc_id} does not exist")


class DocumentExists(StoreError):
    def __init__(self, collection: str, key: str, value: Any):
        self.collection = collection
        self.key = key
        self.value = value
        super().__init__(f"{collection} already has a document with {key}={value!r}")


class ConditionFailed(StoreError):
    """A conditional field operation found an unexpected current value"""

    def __init__(self, path: Tuple[str, ...], current: Any):
        self.path = path
        self.current = current
        super().__init__(f"Condition failed at {'.'.join(path)} (current value: {current!r})")


# =============================================================================
# Field operations
# =============================================================================

class FieldOp:
    """A field-level update evaluated against the current stored value"""

    def apply(self, path: Tuple[str, ...], current: Any) -> Any:
        raise NotImplementedError


class ArrayUnion(FieldOp):
    """Append each value that is not already present"""

    def __init__(self, *values: Any):
        self.values = values

    def apply(self, path, current):
        result = list(current or [])
        for value in self.values:
            if value not in result:
                result.append(value)
        return result


class ArrayRemove(FieldOp):
    """Remove every occurrence of each value"""

    def __init__(self, *values: Any):
        self.values = values

    def apply(self, path, current):
        return [item for item in (current or []) if item not in self.values]


class SetIfAbsent(FieldOp):
    """Write only when the field is missing or null"""

    def __init__(self, value: Any):
        self.value = value

    def apply(self, path, current):
        if current is not None:
            raise ConditionFailed(path, current)
        return self.value


class SetIfEquals(FieldOp):
    """Compare-and-set: write only when the field holds ``expected``"""

    def __init__(self, expected: Any, value: Any):
        self.expected = expected
        self.value = value

    def apply(self, path, current):
        if current != self.expected:
            raise ConditionFailed(path, current)
        return self.value


class DeleteField(FieldOp):
    def apply(self, path, current):
        return _DELETE


_DELETE = object()


def split_path(path: FieldPath) -> Tuple[str, ...]:
    """Dotted strings split on '.'; tuples are taken as-is (for keys containing dots)"""
    if isinstance(path, tuple):
        parts = path
    else:
        parts = tuple(path.split("."))
    if not parts or any(not part for part in parts):
        raise ValueError(f"Invalid field path: {path!r}")
    return parts


def apply_changes(document: dict, changes: Mapping[FieldPath, Any]) -> dict:
    """Return a copy of ``document`` with ``changes`` applied.

    Raises ConditionFailed before anything is written if any conditional
    operation does not hold.
    """
    result = copy.deepcopy(document)
    for raw_path, change in changes.items():
        path = split_path(raw_path)
        if path == ("id",):
            raise ValueError("The id field cannot be changed")

        parent = result
        for part in path[:-1]:
            child = parent.get(part)
            if not isinstance(child, dict):
                child = {}
                parent[part] = child
            parent = child

        current = parent.get(path[-1])
        value = change.apply(path, current) if isinstance(change, FieldOp) else copy.deepcopy(change)
        if value is _DELETE:
            parent.pop(path[-1], None)
        else:
            parent[path[-1]] = value
    return result


# =============================================================================
# Snapshots and listeners
# =============================================================================

@dataclass
class DocumentChange:
    type: str  # "added", "modified" or "removed"
    document: dict


@dataclass
class Snapshot:
    """Result set of a live query at one store version"""

    collection: str
    documents: List[dict]
    version: int
    changes: List[DocumentChange] = field(default_factory=list)

    @property
    def ids(self) -> List[str]:
        return [doc["id"] for doc in self.documents]

    def __len__(self) -> int:
        return len(self.documents)


class ListenerRegistration:
    """Handle returned by :meth:`DocumentStore.subscribe`"""

    def __init__(self, store: "DocumentStore", listener: "_Listener"):
        self._store = store
        self._listener = listener

    @property
    def active(self) -> bool:
        return self._store._has_listener(self._listener)

    def remove(self) -> bool:
        """Unregister the listener. Returns False if it was already gone."""
        return self._store._remove_listener(self._listener)


@dataclass(eq=False)
class _Listener:
    collection: str
    where: Any
    order_by: Optional[str]
    callback: Callable[[Snapshot], None]
    on_error: Optional[Callable[[Exception], None]] = None
    last: Dict[str, dict] = field(default_factory=dict)


# =============================================================================
# Store
# =============================================================================

class DocumentStore:
    """Document database service using TinyDB"""

    COLLECTIONS = (
        "accounts",
        "users",
        "teams",
        "events",
        "services",
        "messages",
        "role_restrictions",
    )

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = str(db_path)
        self.db: Optional[TinyDB] = None
        self._lock = threading.RLock()
        self._listeners: Dict[str, List[_Listener]] = {}
        self._version = 0

    def initialize(self):
        """Initialize database connection"""
        with self._lock:
            if self.db is not None:
                return
            if self.db_path == ":memory:":
                self.db = TinyDB(storage=MemoryStorage)
            else:
                path = Path(self.db_path)
                path.parent.mkdir(parents=True, exist_ok=True)
                self.db = TinyDB(str(path))
            logger.info(f"Document store connected: {self.db_path}")

    def close(self):
        """Close storage and drop every listener with an error"""
        with self._lock:
            listeners = [l for group in self._listeners.values() for l in group]
            self._listeners.clear()
            if self.db is not None:
                self.db.close()
                self.db = None
            logger.info(f"Document store closed ({len(listeners)} listeners dropped)")

        for listener in listeners:
            if listener.on_error:
                listener.on_error(StoreUnavailable("The document store was closed"))

    @property
    def version(self) -> int:
        return self._version

    def generate_id(self) -> str:
        return str(uuid.uuid4())

    def timestamp(self) -> str:
        return isoformat(utcnow())

    @contextmanager
    def atomic(self):
        """Hold the write lock across a read-then-write sequence"""
        with self._lock:
            yield self

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, collection: str, where=None, order_by: Optional[str] = None) -> List[dict]:
        """One-shot query. ``order_by`` is a field name, '-' prefixed for descending."""
        with self._lock:
            return self._query(collection, where, order_by)

    def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        with self._lock:
            try:
                doc = self._table(collection).get(Query().id == doc_id)
            except OSError as e:
                raise StoreUnavailable(str(e)) from e
            return copy.deepcopy(dict(doc)) if doc is not None else None

    def count(self, collection: str, where=None) -> int:
        with self._lock:
            table = self._table(collection)
            return table.count(where) if where is not None else len(table)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create(
        self,
        collection: str,
        data: Mapping[str, Any],
        doc_id: Optional[str] = None,
        unique_on: Optional[str] = None,
    ) -> dict:
        """Insert a document. ``unique_on`` names a field that must not repeat."""
        with self._lock:
            table = self._table(collection)
            document = copy.deepcopy(dict(data))
            document["id"] = doc_id or document.get("id") or self.generate_id()

            if table.contains(Query().id == document["id"]):
                raise DocumentExists(collection, "id", document["id"])
            if unique_on is not None:
                value = document.get(unique_on)
                if table.contains(Query()[unique_on] == value):
                    raise DocumentExists(collection, unique_on, value)

            self._write(lambda: table.insert(document))
            self._commit(collection)
            return copy.deepcopy(document)

    def update(self, collection: str, doc_id: str, changes: Mapping[FieldPath, Any]) -> dict:
        """Apply field changes to one document and return the stored result"""
        with self._lock:
            table = self._table(collection)
            doc = table.get(Query().id == doc_id)
            if doc is None:
                raise DocumentNotFound(collection, doc_id)

            updated = apply_changes(dict(doc), changes)
            self._write(lambda: table.update(_replace_with(updated), Query().id == doc_id))
            self._commit(collection)
            return copy.deepcopy(updated)

    def update_where(self, collection: str, where, changes: Mapping[FieldPath, Any]) -> int:
        """Apply the same field changes to every matching document in one write"""
        with self._lock:
            table = self._table(collection)
            matches = table.search(where)
            if not matches:
                return 0

            updated = {doc["id"]: apply_changes(dict(doc), changes) for doc in matches}

            def transform(document):
                replacement = updated[document["id"]]
                document.clear()
                document.update(copy.deepcopy(replacement))

            self._write(lambda: table.update(transform, Query().id.one_of(list(updated))))
            self._commit(collection)
            return len(updated)

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            table = self._table(collection)
            removed = self._write(lambda: table.remove(Query().id == doc_id))
            if removed:
                self._commit(collection)
            return bool(removed)

    def batch_delete(self, collection: str, doc_ids: Iterable[str]) -> int:
        """Delete several documents in a single storage write (all or nothing)"""
        ids = list(dict.fromkeys(doc_ids))
        if not ids:
            return 0
        with self._lock:
            table = self._table(collection)
            removed = self._write(lambda: table.remove(Query().id.one_of(ids)))
            if removed:
                self._commit(collection)
            return len(removed)

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def subscribe(
        self,
        collection: str,
        callback: Callable[[Snapshot], None],
        where=None,
        order_by: Optional[str] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> ListenerRegistration:
        """Register a live query; the initial snapshot is delivered immediately"""
        with self._lock:
            self._table(collection)
            listener = _Listener(
                collection=collection,
                where=where,
                order_by=order_by,
                callback=callback,
                on_error=on_error,
            )
            self._listeners.setdefault(collection, []).append(listener)
            self._deliver(listener, initial=True)
            return ListenerRegistration(self, listener)

    def listener_count(self, collection: Optional[str] = None) -> int:
        with self._lock:
            if collection is not None:
                return len(self._listeners.get(collection, []))
            return sum(len(group) for group in self._listeners.values())

    def _has_listener(self, listener: _Listener) -> bool:
        with self._lock:
            return listener in self._listeners.get(listener.collection, [])

    def _remove_listener(self, listener: _Listener) -> bool:
        with self._lock:
            group = self._listeners.get(listener.collection, [])
            if listener not in group:
                return False
            group.remove(listener)
            if not group:
                del self._listeners[listener.collection]
            return True

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _table(self, collection: str):
        if collection not in self.COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        if self.db is None:
            raise StoreUnavailable("The document store is not connected")
        return self.db.table(collection)

    def _write(self, operation: Callable[[], Any]) -> Any:
        try:
            return operation()
        except OSError as e:
            logger.error(f"Storage write failed: {e}")
            raise StoreUnavailable(str(e)) from e

    def _query(self, collection: str, where, order_by: Optional[str]) -> List[dict]:
        table = self._table(collection)
        try:
            docs = table.search(where) if where is not None else table.all()
        except OSError as e:
            raise StoreUnavailable(str(e)) from e
        documents = [copy.deepcopy(dict(doc)) for doc in docs]
        return _sort(documents, order_by)

    def _commit(self, collection: str):
        self._version += 1
        for listener in list(self._listeners.get(collection, [])):
            self._deliver(listener)

    def _deliver(self, listener: _Listener, initial: bool = False):
        documents = self._query(listener.collection, listener.where, listener.order_by)
        current = {doc["id"]: doc for doc in documents}

        changes = []
        for doc_id, doc in current.items():
            previous = listener.last.get(doc_id)
            if previous is None:
                changes.append(DocumentChange("added", doc))
            elif previous != doc:
                changes.append(DocumentChange("modified", doc))
        for doc_id, doc in listener.last.items():
            if doc_id not in current:
                changes.append(DocumentChange("removed", doc))

        order_changed = list(current) != list(listener.last)
        if not initial and not changes and not order_changed:
            return

        listener.last = current
        snapshot = Snapshot(
            collection=listener.collection,
            documents=documents,
            version=self._version,
            changes=changes,
        )
        try:
            listener.callback(snapshot)
        except Exception as e:
            logger.error(f"Listener on {listener.collection} failed, removing it: {e}", exc_info=True)
            self._remove_listener(listener)


def _replace_with(replacement: dict):
    def transform(document):
        document.clear()
        document.update(copy.deepcopy(replacement))
    return transform


def _sort(documents: List[dict], order_by: Optional[str]) -> List[dict]:
    if not order_by:
        return documents
    descending = order_by.startswith("-")
    key = order_by.lstrip("-")
    present = [doc for doc in documents if doc.get(key) is not None]
    missing = [doc for doc in documents if doc.get(key) is None]
    present.sort(key=lambda doc: doc[key], reverse=descending)
    return present + missing
