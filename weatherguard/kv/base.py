"""
Key-Value Store Abstraction

Primitive get/put/delete/list operations over opaque string keys.
Each value may carry a small metadata record. There are no transactions
and no ordering guarantee beyond lexical grouping of keys by prefix.

Failures propagate to the caller as KVStoreError; this layer never retries.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional

from weatherguard.models.common import KVMetadata


logger = logging.getLogger(__name__)

# Cloudflare KV returns at most 1000 keys per list call
DEFAULT_LIST_LIMIT = 1000


@dataclass
class KVKey:
    """A listed key and the metadata stored with it."""
    name: str
    metadata: Optional[KVMetadata] = None


@dataclass
class KVListResult:
    """One page of a prefix listing."""
    keys: List[KVKey] = field(default_factory=list)
    list_complete: bool = True
    cursor: Optional[str] = None

    @property
    def names(self) -> List[str]:
        return [key.name for key in self.keys]


class KVStore(ABC):
    """Abstract base class for key-value stores."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if the key is absent."""
        pass

    @abstractmethod
    async def put(
        self,
        key: str,
        value: Any,
        metadata: Optional[KVMetadata] = None,
    ) -> None:
        """Store a JSON-compatible value under key, replacing any previous value."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a key. Deleting an absent key is not an error."""
        pass

    @abstractmethod
    async def list(
        self,
        prefix: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> KVListResult:
        """List keys in lexical order, one page at a time."""
        pass

    async def list_all(self, prefix: Optional[str] = None) -> List[KVKey]:
        """Follow list cursors until the listing is complete."""
        keys: List[KVKey] = []
        cursor = None

        while True:
            page = await self.list(prefix=prefix, cursor=cursor)
            keys.extend(page.keys)
            if page.list_complete or not page.cursor:
                break
            cursor = page.cursor

        logger.debug(f"Listed {len(keys)} keys under {prefix!r}")
        return keys

    async def close(self) -> None:
        """Release any underlying connections."""
        return None
