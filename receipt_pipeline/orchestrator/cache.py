"""
Result Cache.

Bounded, thread-safe cache of pipeline results keyed by the sha256
fingerprint of the input image. Entries are write-once; the oldest
entry is evicted when the cache is full.

Author: ML Engineering Team
"""

import threading
from collections import OrderedDict
from typing import Any, Dict, Optional

from config import get_config
from receipt_pipeline.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


class ResultCache:
    """
    FIFO cache guarded by a lock.

    Attributes:
        max_entries: Size limit

    Example:
        >>> cache = ResultCache(max_entries=2)
        >>> cache.put("a", 1)
        True
        >>> cache.put("a", 2)
        False
        >>> cache.get("a")
        1
    """

    def __init__(self, max_entries: Optional[int] = None) -> None:
        self.max_entries = max_entries if max_entries is not None else get_config("cache.max_entries", 100)
        self._entries: 'OrderedDict[str, Any]' = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            if key in self._entries:
                self.hits += 1
                return self._entries[key]
            self.misses += 1
            return None

    def put(self, key: str, value: Any) -> bool:
        """
        Store a value unless the key is already present.

        Returns:
            True if stored, False if the key already existed.
        """
        if self.max_entries <= 0:
            return False

        with self._lock:
            if key in self._entries:
                return False
            while len(self._entries) >= self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Cache full, evicted {evicted[:12]}")
            self._entries[key] = value
            return True

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                'entries': len(self._entries),
                'maxEntries': self.max_entries,
                'hits': self.hits,
                'misses': self.misses,
            }
