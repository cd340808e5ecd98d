"""
Schemaless JSON tree store - nested objects addressed by path tokens.
No ownership, no rules and no system fields besides the `_id` stamped on POST.
"""

import copy
import threading
import uuid
from typing import Any, Dict, List, Optional

from .errors import BadRequest, NotFound
from ..util.logging import logger


class JsonTreeStore:
    """In-memory nested dict addressed by path tokens, e.g. ['users', '<id>']."""

    def __init__(self, seed_data: Optional[Dict[str, Any]] = None):
        self._root: Dict[str, Any] = copy.deepcopy(seed_data or {})
        self._lock = threading.RLock()

    def _walk(self, tokens: List[str], create: bool = False) -> Any:
        node = self._root
        for token in tokens:
            if not isinstance(node, dict):
                raise NotFound(f"Path {'/'.join(tokens)} does not exist")
            if token not in node:
                if not create:
                    raise NotFound(f"Path {'/'.join(tokens)} does not exist")
                node[token] = {}
            node = node[token]
        return node

    def get(self, tokens: List[str]) -> Any:
        """Deep copy of the value at the path."""
        with self._lock:
            return copy.deepcopy(self._walk(tokens))

    def post(self, tokens: List[str], body: Dict[str, Any]) -> Dict[str, Any]:
        """Store body under a new id inside the object at the path; intermediate objects are created."""
        if not isinstance(body, dict):
            raise BadRequest("Request body must be a JSON object")

        with self._lock:
            parent = self._walk(tokens, create=True)
            if not isinstance(parent, dict):
                raise BadRequest(f"Path {'/'.join(tokens)} is not an object")

            record_id = uuid.uuid4().hex
            while record_id in parent:
                record_id = uuid.uuid4().hex

            record = copy.deepcopy(body)
            record['_id'] = record_id
            parent[record_id] = record

        logger.log_operation("jsonstore.post", "success", {"path": '/'.join(tokens + [record_id])})
        return copy.deepcopy(record)

    def put(self, tokens: List[str], body: Any) -> Any:
        """Replace (or create) the value at the path; the parent must exist."""
        if not tokens:
            raise BadRequest("Cannot replace the store root")

        with self._lock:
            parent = self._walk(tokens[:-1])
            if not isinstance(parent, dict):
                raise NotFound(f"Path {'/'.join(tokens)} does not exist")
            parent[tokens[-1]] = copy.deepcopy(body)

        logger.log_operation("jsonstore.put", "success", {"path": '/'.join(tokens)})
        return copy.deepcopy(body)

    def patch(self, tokens: List[str], body: Dict[str, Any]) -> Dict[str, Any]:
        """Shallow-merge body into the object at the path."""
        if not isinstance(body, dict):
            raise BadRequest("Request body must be a JSON object")

        with self._lock:
            target = self._walk(tokens)
            if not isinstance(target, dict):
                raise BadRequest(f"Path {'/'.join(tokens)} is not an object")
            target.update(copy.deepcopy(body))
            result = copy.deepcopy(target)

        logger.log_operation("jsonstore.patch", "success", {"path": '/'.join(tokens)})
        return result

    def delete(self, tokens: List[str]) -> Any:
        """Remove the value at the path and return it."""
        if not tokens:
            raise BadRequest("Cannot delete the store root")

        with self._lock:
            parent = self._walk(tokens[:-1])
            if not isinstance(parent, dict) or tokens[-1] not in parent:
                raise NotFound(f"Path {'/'.join(tokens)} does not exist")
            removed = parent.pop(tokens[-1])

        logger.log_operation("jsonstore.delete", "success", {"path": '/'.join(tokens)})
        return removed
