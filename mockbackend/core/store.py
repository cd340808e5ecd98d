"""
Collection store - in-memory CRUD over arbitrary named collections.

Each collection is an insertion-ordered dict of records keyed by `_id`.
Every value handed out is a deep copy, so callers can never reach stored state.
"""

import copy
import threading
import time
import uuid
from typing import Any, Dict, List, Optional

from .errors import NotFound
from ..util.logging import logger

SYSTEM_FIELDS = ('_id', '_createdOn', '_updatedOn', '_ownerId')


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def assign_system_props(target: Dict[str, Any], source: Dict[str, Any], *props: str) -> Dict[str, Any]:
    """Copy system fields (or only `props`, when given) from source onto target."""
    for prop in props or SYSTEM_FIELDS:
        if prop in source:
            target[prop] = copy.deepcopy(source[prop])
    return target


def assign_clean(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """Copy every non-system field from source onto target."""
    for key, value in source.items():
        if key not in SYSTEM_FIELDS:
            target[key] = copy.deepcopy(value)
    return target


class CollectionStore:
    """Owns all collections; exposes get/add/set/merge/delete/query primitives."""

    def __init__(self, seed_data: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._store_lock = threading.Lock()

        for name, records in (seed_data or {}).items():
            target = self._ensure_collection(name)
            for record_id, record in records.items():
                target[record_id] = copy.deepcopy(record)

    def _ensure_collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        with self._store_lock:
            if name not in self._collections:
                self._collections[name] = {}
                self._locks[name] = threading.RLock()
            return self._collections[name]

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        target = self._collections.get(name)
        if target is None:
            raise NotFound(f"Collection {name} does not exist")
        return target

    def _lock(self, name: str) -> threading.RLock:
        self._collection(name)
        return self._locks[name]

    @staticmethod
    def _existing(target: Dict[str, Dict[str, Any]], collection: str, record_id: str) -> Dict[str, Any]:
        if record_id not in target:
            raise NotFound(f"Entry {record_id} does not exist in collection {collection}")
        return target[record_id]

    def list_collections(self) -> List[str]:
        """Names of all collections, in creation order."""
        with self._store_lock:
            return list(self._collections.keys())

    def has(self, collection: str, record_id: str = None) -> bool:
        target = self._collections.get(collection)
        if target is None:
            return False
        return record_id is None or record_id in target

    def get(self, collection: str, record_id: str = None):
        """
        Fetch a whole collection or a single record.

        Returns:
            A list of record copies when record_id is None, else one record copy.

        Raises:
            NotFound: If the collection or record does not exist.
        """
        with self._lock(collection):
            target = self._collection(collection)
            if record_id is None:
                return [dict(copy.deepcopy(entry), _id=key) for key, entry in target.items()]

            entry = self._existing(target, collection, record_id)
            return dict(copy.deepcopy(entry), _id=record_id)

    def add(self, collection: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a new record under a freshly generated id. Keeps a caller-stamped _ownerId."""
        record = assign_system_props({}, payload, '_ownerId')
        assign_clean(record, payload)

        target = self._ensure_collection(collection)
        with self._locks[collection]:
            record_id = uuid.uuid4().hex
            while record_id in target:
                record_id = uuid.uuid4().hex

            record['_createdOn'] = now_ms()
            target[record_id] = record

        logger.log_store_operation("add", collection, record_id)
        return dict(copy.deepcopy(record), _id=record_id)

    def set(self, collection: str, record_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Replace a record. Id, creation time and owner carry over from the existing record."""
        with self._lock(collection):
            target = self._collection(collection)
            existing = self._existing(target, collection, record_id)

            record = assign_clean({}, payload)
            assign_system_props(record, existing, '_createdOn', '_ownerId')
            record['_updatedOn'] = now_ms()
            target[record_id] = record

        logger.log_store_operation("set", collection, record_id)
        return dict(copy.deepcopy(record), _id=record_id)

    def merge(self, collection: str, record_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Overlay the non-system fields of payload onto an existing record."""
        with self._lock(collection):
            target = self._collection(collection)
            record = copy.deepcopy(self._existing(target, collection, record_id))

            assign_clean(record, payload)
            record['_updatedOn'] = now_ms()
            target[record_id] = record

        logger.log_store_operation("merge", collection, record_id)
        return dict(copy.deepcopy(record), _id=record_id)

    def delete(self, collection: str, record_id: str) -> Dict[str, int]:
        """Remove a record and return a deletion receipt."""
        with self._lock(collection):
            target = self._collection(collection)
            self._existing(target, collection, record_id)
            del target[record_id]

        logger.log_store_operation("delete", collection, record_id)
        return {'deletedOn': now_ms()}

    def query(self, collection: str, match_spec: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Records matching every key of match_spec.

        Strings compare case-insensitively, other values with strict equality.
        """
        with self._lock(collection):
            target = self._collection(collection)
            result = []
            for key, entry in target.items():
                candidate = dict(entry, _id=key)
                if all(_matches(candidate, prop, value) for prop, value in match_spec.items()):
                    result.append(dict(copy.deepcopy(entry), _id=key))
            return result


def _matches(record: Dict[str, Any], prop: str, expected: Any) -> bool:
    if prop not in record:
        return False

    actual = record[prop]
    if isinstance(expected, str) and isinstance(actual, str):
        return expected.casefold() == actual.casefold()
    if _is_number(actual) and _is_number(expected):
        return actual == expected
    return type(actual) is type(expected) and actual == expected


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
