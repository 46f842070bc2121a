import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

class CollectionCache:
    """In-memory cache of one domain collection's records, keyed by id.

    The cache is never authoritative: it is filled by a full owner-scoped fetch,
    patched by successful mutations and dropped whenever the session identity changes.
    """

    def __init__(self, name: str):
        self.name = name
        self._records: Dict[str, Any] = {}
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def get(self, record_id: str) -> Optional[Any]:
        return self._records.get(record_id)

    def values(self, sort_key: Optional[Callable[[Any], Any]] = None, reverse: bool = False) -> List[Any]:
        records = list(self._records.values())
        if sort_key is not None:
            records.sort(key=sort_key, reverse=reverse)
        return records

    def replace(self, records: List[Any]) -> None:
        """Replace the cache contents with a fresh fetch."""
        self._records = {record.id: record for record in records}
        self._loaded = True
        logger.debug(f"Cache '{self.name}' loaded with {len(records)} records")

    def upsert(self, record: Any) -> None:
        self._records[record.id] = record

    def discard(self, record_id: str) -> None:
        self._records.pop(record_id, None)

    def invalidate(self) -> None:
        """Manually invalidate cache."""
        self._records = {}
        self._loaded = False
        logger.debug(f"Cache '{self.name}' invalidated")

    def __len__(self) -> int:
        return len(self._records)
