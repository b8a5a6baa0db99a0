"""
In-process durable store adapters.

``MemoryStore`` is used by tests and single-process runs. ``JsonFileStore``
persists the same data to a JSON file (atomic tmp + replace) so local
development survives restarts.
"""

import copy
import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..errors import StorageUnavailableError
from .base import DurableStore, SortCondition, TableSchema, chunked, is_live

logger = logging.getLogger("tidalvoice.storage")

_FILE_LOCK = threading.RLock()


class MemoryStore(DurableStore):
    """Thread-safe in-memory table."""

    def __init__(self, table_name: str, schema: TableSchema, clock: Callable[[], float] = time.time):
        super().__init__(table_name, schema)
        self._clock = clock
        self._lock = threading.RLock()
        self._items: Dict[Tuple[Any, Any], Dict[str, Any]] = {}

    def _primary(self, key: Dict[str, Any]) -> Tuple[Any, Any]:
        pk_attr, sk_attr = self.schema.partition_key, self.schema.sort_key
        if pk_attr not in key or (sk_attr and sk_attr not in key):
            raise ValueError(f"Incomplete key for {self.table_name}: {sorted(key)}")
        return key[pk_attr], key.get(sk_attr) if sk_attr else None

    def _after_write(self) -> None:
        """Hook for persisting subclasses."""

    def put_item(self, item: Dict[str, Any]) -> Dict[str, Any]:
        stored = copy.deepcopy(item)
        with self._lock:
            self._items[self._primary(stored)] = stored
            self._after_write()
        return copy.deepcopy(stored)

    def get_item(self, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            item = self._items.get(self._primary(key))
            if item is None or not is_live(item, self.schema.ttl_attribute, self._clock()):
                return None
            return copy.deepcopy(item)

    def query(
        self,
        partition_key: Any,
        sort_condition: Optional[SortCondition] = None,
        scan_forward: bool = True,
        limit: Optional[int] = None,
        index_name: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        pk_attr, sk_attr = self.schema.key_attributes(index_name)
        now = self._clock()
        with self._lock:
            candidates = [
                item for item in list(self._items.values())
                if item.get(pk_attr) == partition_key and is_live(item, self.schema.ttl_attribute, now)
            ]
        if sort_condition is not None and sk_attr:
            candidates = [item for item in candidates if sort_condition.matches(item.get(sk_attr))]
        if sk_attr:
            candidates.sort(key=lambda item: (item.get(sk_attr) is None, item.get(sk_attr) or ""),
                            reverse=not scan_forward)
        if limit is not None:
            candidates = candidates[:max(0, int(limit))]
        return copy.deepcopy(candidates)

    def delete_item(self, key: Dict[str, Any]) -> bool:
        with self._lock:
            removed = self._items.pop(self._primary(key), None) is not None
            if removed:
                self._after_write()
        return removed

    def batch_write(self, items: List[Dict[str, Any]], operation: str = "put") -> Dict[str, Any]:
        if operation not in ("put", "delete"):
            raise ValueError(f"Unsupported batch operation: {operation}")
        batches = 0
        with self._lock:
            for batch in chunked(list(items)):
                batches += 1
                for item in batch:
                    if operation == "delete":
                        self._items.pop(self._primary(item), None)
                    else:
                        stored = copy.deepcopy(item)
                        self._items[self._primary(stored)] = stored
            if batches:
                self._after_write()
        logger.debug(
            "storage.batch_write",
            extra={"table": self.table_name, "operation": operation, "count": len(items), "batches": batches},
        )
        return {"batches": batches, "count": len(items)}

    def purge_expired(self) -> int:
        """Physically drop expired items (the in-memory stand-in for a TTL reaper)."""
        now = self._clock()
        with self._lock:
            expired = [k for k, item in list(self._items.items())
                       if not is_live(item, self.schema.ttl_attribute, now)]
            for key in expired:
                del self._items[key]
            if expired:
                self._after_write()
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info["items"] = len(self)
        return info


class JsonFileStore(MemoryStore):
    """``MemoryStore`` mirrored to a JSON file shared by several tables."""

    def __init__(self, table_name: str, schema: TableSchema, path: str,
                 clock: Callable[[], float] = time.time):
        super().__init__(table_name, schema, clock)
        self.path = Path(path)
        for item in self._read_file().get(table_name, []):
            try:
                self._items[self._primary(item)] = item
            except ValueError:
                logger.warning("storage.json.skip_item", extra={"table": table_name})

    def _read_file(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("storage.json.unreadable", extra={"path": str(self.path), "error": str(exc)})
            return {}

    def _after_write(self) -> None:
        with _FILE_LOCK:
            data = self._read_file()
            data[self.table_name] = list(self._items.values())
            try:
                if self.path.parent and not self.path.parent.exists():
                    self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = f"{self.path}.tmp"
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2, default=str)
                os.replace(tmp_path, self.path)
            except OSError as exc:
                raise StorageUnavailableError(
                    f"Could not write {self.path}",
                    details={"table": self.table_name},
                    original_error=exc,
                )

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info["path"] = str(self.path)
        return info
