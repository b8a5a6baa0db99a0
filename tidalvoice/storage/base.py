"""
Durable store contract shared by the token and playback stores.

Items are plain dictionaries. A table has a partition key, an optional sort
key, optional secondary indexes and an optional ``ttl`` attribute (epoch
seconds). Expired items are hidden from reads; physical deletion is left to
the backend.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..constants import BATCH_WRITE_LIMIT


@dataclass(frozen=True)
class TableSchema:
    """Key layout of one table.

    Attributes:
        partition_key: Hash key attribute name
        sort_key: Range key attribute name, if any
        indexes: Secondary index name -> (partition attribute, sort attribute)
        ttl_attribute: Attribute holding the expiry epoch, if any
    """
    partition_key: str
    sort_key: Optional[str] = None
    indexes: Dict[str, Tuple[str, Optional[str]]] = field(default_factory=dict)
    ttl_attribute: Optional[str] = "ttl"

    def key_attributes(self, index_name: Optional[str] = None) -> Tuple[str, Optional[str]]:
        if index_name is None:
            return self.partition_key, self.sort_key
        try:
            return self.indexes[index_name]
        except KeyError:
            raise ValueError(f"Unknown index: {index_name}")

    def key_of(self, item: Dict[str, Any]) -> Dict[str, Any]:
        key = {self.partition_key: item[self.partition_key]}
        if self.sort_key:
            key[self.sort_key] = item[self.sort_key]
        return key


_SORT_OPERATORS = ("eq", "lt", "lte", "gt", "gte", "between", "begins_with")


@dataclass(frozen=True)
class SortCondition:
    """Condition on the sort key of a query."""
    op: str
    value: Any
    upper: Any = None

    def __post_init__(self):
        if self.op not in _SORT_OPERATORS:
            raise ValueError(f"Unsupported sort condition: {self.op}")

    @classmethod
    def eq(cls, value: Any) -> "SortCondition":
        return cls("eq", value)

    @classmethod
    def lt(cls, value: Any) -> "SortCondition":
        return cls("lt", value)

    @classmethod
    def lte(cls, value: Any) -> "SortCondition":
        return cls("lte", value)

    @classmethod
    def gt(cls, value: Any) -> "SortCondition":
        return cls("gt", value)

    @classmethod
    def gte(cls, value: Any) -> "SortCondition":
        return cls("gte", value)

    @classmethod
    def between(cls, low: Any, high: Any) -> "SortCondition":
        return cls("between", low, high)

    @classmethod
    def begins_with(cls, prefix: str) -> "SortCondition":
        return cls("begins_with", prefix)

    def matches(self, candidate: Any) -> bool:
        if candidate is None:
            return False
        if self.op == "eq":
            return candidate == self.value
        if self.op == "lt":
            return candidate < self.value
        if self.op == "lte":
            return candidate <= self.value
        if self.op == "gt":
            return candidate > self.value
        if self.op == "gte":
            return candidate >= self.value
        if self.op == "between":
            return self.value <= candidate <= self.upper
        return str(candidate).startswith(str(self.value))


def is_live(item: Dict[str, Any], ttl_attribute: Optional[str], now: Optional[float] = None) -> bool:
    """False once the item's ttl attribute lies in the past."""
    if not ttl_attribute:
        return True
    expires = item.get(ttl_attribute)
    if expires is None:
        return True
    try:
        return float(expires) > (time.time() if now is None else now)
    except (TypeError, ValueError):
        return True


def chunked(items: List[Any], size: int = BATCH_WRITE_LIMIT) -> Iterable[List[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class DurableStore(ABC):
    """Key/value table with sorted partitions and secondary indexes."""

    def __init__(self, table_name: str, schema: TableSchema):
        self.table_name = table_name
        self.schema = schema

    @abstractmethod
    def put_item(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or replace an item; returns the stored item."""

    @abstractmethod
    def get_item(self, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Return the item with this primary key, or None."""

    @abstractmethod
    def query(
        self,
        partition_key: Any,
        sort_condition: Optional[SortCondition] = None,
        scan_forward: bool = True,
        limit: Optional[int] = None,
        index_name: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Items of one partition ordered by sort key."""

    @abstractmethod
    def delete_item(self, key: Dict[str, Any]) -> bool:
        """Delete by primary key; deleting a missing item is not an error."""

    @abstractmethod
    def batch_write(self, items: List[Dict[str, Any]], operation: str = "put") -> Dict[str, Any]:
        """Put items, or delete keys, in chunks of 25.

        Returns:
            Dict[str, Any]: ``{"batches": n, "count": m}``
        """

    def describe(self) -> Dict[str, Any]:
        return {"table": self.table_name, "backend": self.__class__.__name__}
