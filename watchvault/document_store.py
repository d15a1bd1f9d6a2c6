"""
Remote document store used for published and followed lists.

The store is an opaque key-value document service: documents are JSON-style
dicts addressed by (collection, doc_id), written individually or in batches,
and observable through one change listener per document. Listeners receive
the full document on every change, ``None`` once the document is gone, or an
error when the subscription breaks.
"""
import copy
import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import redis

logger = logging.getLogger('main')

# callback(snapshot, error): snapshot is the full document or None
SnapshotCallback = Callable[[Optional[Dict[str, Any]], Optional[Exception]], None]


class DocumentStoreError(Exception):
    """Transport-level failure of the remote store"""
    pass


class DocumentNotFoundError(DocumentStoreError):
    pass


@dataclass
class WriteOp:
    """One operation of a batch write: kind is 'set', 'update' or 'delete'"""

    kind: str
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)


class ListenerRegistration:
    """Handle returned by add_listener; call remove() to stop receiving snapshots"""

    def __init__(self, on_remove: Callable[[], None]):
        self._on_remove = on_remove
        self._removed = False

    @property
    def removed(self):
        return self._removed

    def remove(self):
        if self._removed:
            return
        self._removed = True
        self._on_remove()


class DocumentStore(ABC):
    def new_document_id(self) -> str:
        return uuid.uuid4().hex

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or overwrite a document"""
        pass

    @abstractmethod
    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Merge fields into an existing document; DocumentNotFoundError if missing"""
        pass

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        pass

    @abstractmethod
    def batch_write(self, ops: List[WriteOp]) -> None:
        pass

    @abstractmethod
    def query(self, collection: str, **equals) -> List[Tuple[str, Dict[str, Any]]]:
        """Documents of a collection whose fields equal every keyword given"""
        pass

    @abstractmethod
    def add_listener(self, collection: str, doc_id: str, callback: SnapshotCallback) -> ListenerRegistration:
        """Subscribe to a document. The current snapshot is delivered immediately."""
        pass


def _matches(data, equals):
    return all(data.get(k) == v for k, v in equals.items())


class InMemoryDocumentStore(DocumentStore):
    """Process-local store; listeners are invoked synchronously on the writer's thread"""

    def __init__(self):
        self._documents: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._listeners: Dict[Tuple[str, str], Dict[int, SnapshotCallback]] = {}
        self._next_token = 0
        self._lock = threading.RLock()

    def get(self, collection, doc_id):
        with self._lock:
            data = self._documents.get(collection, {}).get(doc_id)
            return copy.deepcopy(data) if data is not None else None

    def set(self, collection, doc_id, data):
        with self._lock:
            self._documents.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        self._notify(collection, doc_id)

    def update(self, collection, doc_id, fields):
        with self._lock:
            current = self._documents.get(collection, {}).get(doc_id)
            if current is None:
                raise DocumentNotFoundError(f"{collection}/{doc_id} does not exist")
            current.update(copy.deepcopy(fields))
        self._notify(collection, doc_id)

    def delete(self, collection, doc_id):
        with self._lock:
            self._documents.get(collection, {}).pop(doc_id, None)
        self._notify(collection, doc_id)

    def batch_write(self, ops):
        with self._lock:
            # Validate first so a failing batch applies nothing
            for op in ops:
                if op.kind == "update" and self._documents.get(op.collection, {}).get(op.doc_id) is None:
                    raise DocumentNotFoundError(f"{op.collection}/{op.doc_id} does not exist")
                if op.kind not in ("set", "update", "delete"):
                    raise DocumentStoreError(f"Unknown batch operation {op.kind!r}")
            for op in ops:
                docs = self._documents.setdefault(op.collection, {})
                if op.kind == "set":
                    docs[op.doc_id] = copy.deepcopy(op.data)
                elif op.kind == "update":
                    docs[op.doc_id].update(copy.deepcopy(op.data))
                else:
                    docs.pop(op.doc_id, None)
        for op in ops:
            self._notify(op.collection, op.doc_id)

    def query(self, collection, **equals):
        with self._lock:
            return [
                (doc_id, copy.deepcopy(data))
                for doc_id, data in self._documents.get(collection, {}).items()
                if _matches(data, equals)
            ]

    def add_listener(self, collection, doc_id, callback):
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._listeners.setdefault((collection, doc_id), {})[token] = callback

        def on_remove():
            with self._lock:
                self._listeners.get((collection, doc_id), {}).pop(token, None)

        callback(self.get(collection, doc_id), None)
        return ListenerRegistration(on_remove)

    def listener_count(self, collection=None, doc_id=None):
        with self._lock:
            return sum(
                len(callbacks)
                for (c, d), callbacks in self._listeners.items()
                if (collection is None or c == collection) and (doc_id is None or d == doc_id)
            )

    def notify_error(self, collection, doc_id, error):
        """Deliver a subscription error to every listener of a document"""
        for callback in self._callbacks(collection, doc_id):
            callback(None, error)

    def _callbacks(self, collection, doc_id):
        with self._lock:
            return list(self._listeners.get((collection, doc_id), {}).values())

    def _notify(self, collection, doc_id):
        snapshot = self.get(collection, doc_id)
        for callback in self._callbacks(collection, doc_id):
            callback(copy.deepcopy(snapshot), None)


class RedisDocumentStore(DocumentStore):
    """Documents stored as JSON strings; every write publishes the new snapshot
    on a per-document channel that listeners subscribe to."""

    def __init__(self, client, key_prefix="watchvault", poll_interval=0.5):
        self.client = client
        self.key_prefix = key_prefix
        self.poll_interval = poll_interval

    @classmethod
    def from_url(cls, redis_url, key_prefix="watchvault"):
        client = redis.from_url(redis_url, decode_responses=True)
        logger.info(f"Remote document store using Redis at {redis_url}")
        return cls(client, key_prefix=key_prefix)

    def _key(self, collection, doc_id):
        return f"{self.key_prefix}:{collection}:{doc_id}"

    def _channel(self, collection, doc_id):
        return f"{self.key_prefix}:changes:{collection}:{doc_id}"

    @staticmethod
    def _message(data):
        return json.dumps({"exists": data is not None, "data": data})

    def get(self, collection, doc_id):
        try:
            raw = self.client.get(self._key(collection, doc_id))
        except redis.RedisError as e:
            raise DocumentStoreError(f"Reading {collection}/{doc_id} failed: {e}") from e
        return json.loads(raw) if raw else None

    def set(self, collection, doc_id, data):
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.set(self._key(collection, doc_id), json.dumps(data))
            pipe.publish(self._channel(collection, doc_id), self._message(data))
            pipe.execute()
        except redis.RedisError as e:
            raise DocumentStoreError(f"Writing {collection}/{doc_id} failed: {e}") from e

    def update(self, collection, doc_id, fields):
        key = self._key(collection, doc_id)
        channel = self._channel(collection, doc_id)

        def apply(pipe):
            raw = pipe.get(key)
            if not raw:
                raise DocumentNotFoundError(f"{collection}/{doc_id} does not exist")
            data = json.loads(raw)
            data.update(fields)
            pipe.multi()
            pipe.set(key, json.dumps(data))
            pipe.publish(channel, self._message(data))

        try:
            self.client.transaction(apply, key)
        except redis.RedisError as e:
            raise DocumentStoreError(f"Updating {collection}/{doc_id} failed: {e}") from e

    def delete(self, collection, doc_id):
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.delete(self._key(collection, doc_id))
            pipe.publish(self._channel(collection, doc_id), self._message(None))
            pipe.execute()
        except redis.RedisError as e:
            raise DocumentStoreError(f"Deleting {collection}/{doc_id} failed: {e}") from e

    def batch_write(self, ops):
        try:
            merged = {}
            for op in ops:
                if op.kind == "update":
                    current = merged.get((op.collection, op.doc_id)) or self.get(op.collection, op.doc_id)
                    if current is None:
                        raise DocumentNotFoundError(f"{op.collection}/{op.doc_id} does not exist")
                    current.update(op.data)
                    merged[(op.collection, op.doc_id)] = current
                elif op.kind == "set":
                    merged[(op.collection, op.doc_id)] = dict(op.data)
                elif op.kind == "delete":
                    merged[(op.collection, op.doc_id)] = None
                else:
                    raise DocumentStoreError(f"Unknown batch operation {op.kind!r}")

            pipe = self.client.pipeline(transaction=True)
            for (collection, doc_id), data in merged.items():
                if data is None:
                    pipe.delete(self._key(collection, doc_id))
                else:
                    pipe.set(self._key(collection, doc_id), json.dumps(data))
                pipe.publish(self._channel(collection, doc_id), self._message(data))
            pipe.execute()
        except redis.RedisError as e:
            raise DocumentStoreError(f"Batch write of {len(ops)} operations failed: {e}") from e

    def query(self, collection, **equals):
        prefix = self._key(collection, "")
        try:
            keys = list(self.client.scan_iter(match=f"{prefix}*"))
            values = self.client.mget(keys) if keys else []
        except redis.RedisError as e:
            raise DocumentStoreError(f"Querying {collection} failed: {e}") from e

        results = []
        for key, raw in zip(keys, values):
            if not raw:
                continue
            data = json.loads(raw)
            if _matches(data, equals):
                results.append((key[len(prefix):], data))
        return results

    def add_listener(self, collection, doc_id, callback):
        channel = self._channel(collection, doc_id)
        pubsub = self.client.pubsub(ignore_subscribe_messages=True)

        def handle_message(message):
            try:
                payload = json.loads(message["data"])
            except (TypeError, ValueError) as e:
                logger.error(f"Malformed change message on {channel}: {e}")
                return
            callback(payload.get("data") if payload.get("exists") else None, None)

        def handle_error(error, pubsub_, worker):
            logger.error(f"Listener error for {collection}/{doc_id}: {error}")
            worker.stop()
            callback(None, error)

        try:
            pubsub.subscribe(**{channel: handle_message})
            worker = pubsub.run_in_thread(
                sleep_time=self.poll_interval, daemon=True, exception_handler=handle_error
            )
        except redis.RedisError as e:
            logger.error(f"Could not subscribe to {channel}: {e}")
            callback(None, e)
            return ListenerRegistration(pubsub.close)

        def on_remove():
            worker.stop()
            pubsub.close()

        try:
            callback(self.get(collection, doc_id), None)
        except DocumentStoreError as e:
            callback(None, e)
        return ListenerRegistration(on_remove)


def create_document_store(settings):
    """Build the configured store from the `remote` settings section"""
    remote = settings.get("remote", {})
    backend = remote.get("backend", "memory")
    if backend == "redis":
        return RedisDocumentStore.from_url(remote["redis_url"], key_prefix=remote.get("key_prefix", "watchvault"))
    if backend != "memory":
        logger.warning(f"Unknown remote backend {backend!r}, using in-memory store")
    return InMemoryDocumentStore()
