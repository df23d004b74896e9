"""
In-memory TTL cache

Keeps Freshservice responses for a short while so repeated dashboard passes
stay inside the rate budget. Entries expire lazily: an expired read evicts the
entry, there is no background sweep.
"""
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from helpdesk_dashboard.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


@dataclass
class CacheEntry:
    value: Any
    timestamp: float
    ttl: float


class TTLCache:
    """Key/value store with per-entry expiry"""

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Store a value

        Args:
            key: Caller-composed key (e.g. "tickets_1_100")
            value: Value to store (falsy values are stored as-is)
            ttl: Lifetime in seconds (defaults to `default_ttl`)
        """
        self._entries[key] = CacheEntry(
            value=value,
            timestamp=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl
        )

    def lookup(self, key: str) -> Tuple[bool, Any]:
        """
        Look up a key

        Returns:
            (found, value); found is False on a miss or an expired entry
        """
        entry = self._entries.get(key)
        if entry is None:
            return False, None

        if self._clock() - entry.timestamp > entry.ttl:
            del self._entries[key]
            logger.debug(f"Cache entry expired: {key}")
            return False, None

        return True, entry.value

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or `default` on a miss"""
        found, value = self.lookup(key)
        return value if found else default

    def __contains__(self, key: str) -> bool:
        return self.lookup(key)[0]

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        """Entry count and approximate serialized size"""
        payload = json.dumps(
            [entry.value for entry in self._entries.values()],
            default=str
        )
        return {
            "entries": len(self._entries),
            "total_size": f"{round(len(payload) / 1024)}KB",
        }
