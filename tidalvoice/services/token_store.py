"""
🎟️ Durable token store
======================

Persists OAuth token pairs per user in a table keyed by
``(userId, accessToken)`` with an ``AccessTokenIndex`` secondary index.
A small bounded memo maps access tokens to their stored pair so a refresh
does not need an index query when the pair was seen recently.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..constants import ACCESS_TOKEN_INDEX, ANONYMOUS_USER_ID
from ..storage import DurableStore, TableSchema
from ..utils.logger import mask_token

logger = logging.getLogger("tidalvoice.tokens")

TOKEN_TABLE_SCHEMA = TableSchema(
    partition_key="userId",
    sort_key="accessToken",
    indexes={ACCESS_TOKEN_INDEX: ("accessToken", None)},
    ttl_attribute=None,
)


@dataclass
class TokenRecord:
    """One stored token pair."""
    user_id: str
    access_token: str
    refresh_token: Optional[str]
    expires_at: float
    created_at: float
    updated_at: float

    @property
    def is_expired(self) -> bool:
        return time.time() >= self.expires_at

    @property
    def time_until_expiry(self) -> int:
        return max(0, int(self.expires_at - time.time()))

    def to_item(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresAt": self.expires_at,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "TokenRecord":
        return cls(
            user_id=item["userId"],
            access_token=item["accessToken"],
            refresh_token=item.get("refreshToken"),
            expires_at=float(item.get("expiresAt") or 0),
            created_at=float(item.get("createdAt") or 0),
            updated_at=float(item.get("updatedAt") or item.get("createdAt") or 0),
        )


class TokenStore:
    """Durable token pairs with an access-token lookaside memo."""

    def __init__(self, store: DurableStore, lookaside_size: int = 1000,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.lookaside_size = max(0, int(lookaside_size))
        self._clock = clock
        self._lock = threading.RLock()
        self._lookaside: "OrderedDict[str, TokenRecord]" = OrderedDict()
        logger.info(
            "tokens.store.init",
            extra={"table": store.table_name, "lookaside_size": self.lookaside_size},
        )

    # ------------------------------------------------------------------
    # Lookaside memo
    # ------------------------------------------------------------------

    def _remember(self, record: TokenRecord) -> None:
        if not self.lookaside_size or not record.refresh_token:
            return
        with self._lock:
            self._lookaside[record.access_token] = record
            while len(self._lookaside) > self.lookaside_size:
                self._lookaside.popitem(last=False)

    def _forget(self, access_token: str) -> None:
        with self._lock:
            self._lookaside.pop(access_token, None)

    def clear_lookaside(self) -> int:
        with self._lock:
            size = len(self._lookaside)
            self._lookaside.clear()
        return size

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def save_tokens(self, user_id: Optional[str], access_token: str,
                    refresh_token: Optional[str], expires_in: int = 3600) -> TokenRecord:
        """Store a token pair for ``user_id`` (``anonymous`` when unknown)."""
        now = self._clock()
        record = TokenRecord(
            user_id=user_id or ANONYMOUS_USER_ID,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=now + max(0, int(expires_in)),
            created_at=now,
            updated_at=now,
        )
        self.store.put_item(record.to_item())
        self._remember(record)
        logger.info("tokens.saved", extra={"user_id": record.user_id, "token": mask_token(access_token)})
        return record

    def _user_records(self, user_id: str) -> List[TokenRecord]:
        return [TokenRecord.from_item(item) for item in self.store.query(user_id)]

    def get_tokens_by_user(self, user_id: str) -> Optional[TokenRecord]:
        """Most recently created token pair of ``user_id``, or None."""
        records = self._user_records(user_id)
        if not records:
            logger.info("tokens.none_for_user", extra={"user_id": user_id})
            return None
        latest = max(records, key=lambda r: (r.created_at, r.updated_at))
        self._remember(latest)
        return latest

    def get_token_record(self, access_token: str) -> Optional[TokenRecord]:
        """Stored pair for ``access_token``, including its owner (memo first, then index)."""
        with self._lock:
            cached = self._lookaside.get(access_token)
        if cached is not None:
            logger.debug("tokens.lookaside.hit", extra={"token": mask_token(access_token)})
            return cached

        items = self.store.query(access_token, index_name=ACCESS_TOKEN_INDEX, limit=1)
        if not items:
            logger.info("tokens.refresh_token.not_found", extra={"token": mask_token(access_token)})
            return None

        record = TokenRecord.from_item(items[0])
        self._remember(record)
        return record

    def get_refresh_token(self, access_token: str) -> Optional[str]:
        """Refresh token paired with ``access_token``, or None."""
        record = self.get_token_record(access_token)
        return record.refresh_token if record is not None else None

    def update_tokens(self, user_id: Optional[str], old_access_token: Optional[str],
                      new_access_token: str, new_refresh_token: Optional[str],
                      expires_in: int = 3600) -> TokenRecord:
        """Rotate a token pair.

        The new pair is written before the old one is removed, so a failure
        in between leaves the user with a usable (newest) pair.
        """
        record = self.save_tokens(user_id, new_access_token, new_refresh_token, expires_in)
        if old_access_token and old_access_token != new_access_token:
            self.delete_tokens(record.user_id, old_access_token)
        logger.info("tokens.rotated", extra={"user_id": record.user_id})
        return record

    def delete_tokens(self, user_id: Optional[str], access_token: str) -> bool:
        self.store.delete_item({"userId": user_id or ANONYMOUS_USER_ID, "accessToken": access_token})
        self._forget(access_token)
        logger.info("tokens.deleted", extra={"user_id": user_id, "token": mask_token(access_token)})
        return True

    def delete_all_user_tokens(self, user_id: str) -> int:
        """Remove every token pair of ``user_id`` (account unlink).

        Returns:
            int: Number of pairs removed
        """
        items = self.store.query(user_id)
        if not items:
            logger.info("tokens.nothing_to_delete", extra={"user_id": user_id})
            return 0
        for item in items:
            self._forget(item["accessToken"])
        self.store.batch_write(
            [{"userId": user_id, "accessToken": item["accessToken"]} for item in items],
            operation="delete",
        )
        logger.info("tokens.deleted_all", extra={"user_id": user_id, "count": len(items)})
        return len(items)

    def get_info(self) -> Dict[str, Any]:
        with self._lock:
            lookaside = len(self._lookaside)
        return {
            "table": self.store.table_name,
            "lookaside_entries": lookaside,
            "lookaside_size": self.lookaside_size,
        }
