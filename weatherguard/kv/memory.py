"""
In-Memory Key-Value Store

Dict-backed store for tests and single-process offline mode.
Values are deep-copied on the way in and out, so callers always hold
a copy rather than a reference to what the store keeps.
"""

import bisect
import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from weatherguard.kv.base import DEFAULT_LIST_LIMIT, KVKey, KVListResult, KVStore
from weatherguard.models.common import KVMetadata


logger = logging.getLogger(__name__)


class InMemoryKVStore(KVStore):
    """
    Key-value store held in process memory.

    Listing returns keys in lexical order; the cursor is the name of the
    last key on the previous page.
    """

    def __init__(self, page_limit: int = DEFAULT_LIST_LIMIT):
        self.page_limit = page_limit
        self._data: Dict[str, Tuple[Any, Optional[KVMetadata]]] = {}

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def keys(self) -> List[str]:
        """All stored keys, sorted."""
        return sorted(self._data)

    def metadata_for(self, key: str) -> Optional[KVMetadata]:
        """Metadata stored with a key (test and tooling helper)."""
        entry = self._data.get(key)
        if entry is None:
            return None
        return entry[1].model_copy() if entry[1] else None

    async def get(self, key: str) -> Optional[Any]:
        entry = self._data.get(key)
        if entry is None:
            return None
        return copy.deepcopy(entry[0])

    async def put(
        self,
        key: str,
        value: Any,
        metadata: Optional[KVMetadata] = None,
    ) -> None:
        self._data[key] = (
            copy.deepcopy(value),
            metadata.model_copy() if metadata else None,
        )

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list(
        self,
        prefix: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> KVListResult:
        prefix = prefix or ""
        limit = limit or self.page_limit

        names = [name for name in sorted(self._data) if name.startswith(prefix)]
        if cursor:
            names = names[bisect.bisect_right(names, cursor):]

        page = names[:limit]
        complete = len(names) <= limit

        return KVListResult(
            keys=[KVKey(name=name, metadata=self.metadata_for(name)) for name in page],
            list_complete=complete,
            cursor=None if complete else page[-1],
        )

    def clear(self) -> None:
        self._data.clear()
