"""Scoped query cache for the permit client.

Every cached query declares the resources it was built from. A mutation
publishes ``ResourceChanged(kind, id)`` and only the queries depending on that
resource are dropped:

* ``ResourceChanged("permit", 7)`` drops queries on permit 7 and queries on
  the permit collection (lists, stats, map), but not permit 8.
* ``ResourceChanged("permit")`` drops every permit query.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Iterable, Optional

logger = logging.getLogger("ptw.client.cache")

Resource = tuple[str, Optional[Hashable]]


@dataclass(frozen=True)
class ResourceChanged:
    kind: str
    id: Optional[Hashable] = None


def resource(kind: str, resource_id: Optional[Hashable] = None) -> Resource:
    return (kind, resource_id)


class QueryCache:
    def __init__(self) -> None:
        self._entries: dict[Hashable, Any] = {}
        self._dependents: dict[Resource, set[Hashable]] = defaultdict(set)
        self._lock = threading.RLock()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            return self._entries.get(key, default)

    def put(self, key: Hashable, value: Any, depends_on: Iterable[Resource] = ()) -> None:
        with self._lock:
            self._entries[key] = value
            for dependency in depends_on:
                self._dependents[dependency].add(key)

    def fetch(self, key: Hashable, loader: Callable[[], Any], depends_on: Iterable[Resource] = ()) -> Any:
        with self._lock:
            if key in self._entries:
                return self._entries[key]
        value = loader()
        self.put(key, value, depends_on)
        return value

    def _matching(self, event: ResourceChanged) -> set[Resource]:
        if event.id is None:
            return {dep for dep in self._dependents if dep[0] == event.kind}
        return {(event.kind, event.id), (event.kind, None)}

    def publish(self, event: ResourceChanged) -> set[Hashable]:
        """Drop every query depending on the changed resource; returns the dropped keys."""
        with self._lock:
            dropped: set[Hashable] = set()
            for dependency in self._matching(event):
                dropped |= self._dependents.pop(dependency, set())
            for key in dropped:
                self._entries.pop(key, None)
            for keys in self._dependents.values():
                keys -= dropped
        if dropped:
            logger.debug("invalidated %s queries for %s", len(dropped), event)
        return dropped

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._dependents.clear()
