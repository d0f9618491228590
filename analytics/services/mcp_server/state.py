"""Shared state management for MCP server.

FastMCP's Context is per-request, so we need a shared state mechanism
to persist pipeline results (parsed rows, cleaned transactions, RFM, CLTV,
market basket) across tool calls. Nothing is persisted beyond the process.
"""

import threading
from typing import Any

# Storage keys, in pipeline order
PARSE_RESULT_KEY = "parse_result"
TRANSACTIONS_KEY = "transactions"
EXPLORATORY_SUMMARY_KEY = "exploratory_summary"
RFM_RECORDS_KEY = "rfm_records"
CLTV_RESULT_KEY = "cltv_result"
CLTV_PARAMETERS_KEY = "cltv_parameters"
MARKET_BASKET_KEY = "market_basket_result"
SUGGESTED_MAPPING_KEY = "suggested_mapping"

# Results derived from each key; replaced inputs invalidate them
DOWNSTREAM_KEYS = {
    PARSE_RESULT_KEY: (
        TRANSACTIONS_KEY,
        EXPLORATORY_SUMMARY_KEY,
        RFM_RECORDS_KEY,
        CLTV_RESULT_KEY,
        CLTV_PARAMETERS_KEY,
        MARKET_BASKET_KEY,
        SUGGESTED_MAPPING_KEY,
    ),
    TRANSACTIONS_KEY: (
        EXPLORATORY_SUMMARY_KEY,
        RFM_RECORDS_KEY,
        CLTV_RESULT_KEY,
        CLTV_PARAMETERS_KEY,
        MARKET_BASKET_KEY,
    ),
    RFM_RECORDS_KEY: (CLTV_RESULT_KEY, CLTV_PARAMETERS_KEY),
}


class SharedState:
    """Thread-safe shared state storage for MCP tools.

    Uses threading.RLock for thread-safe access to shared data. Holds at most
    one value per pipeline key above.
    """

    def __init__(self):
        self._store: dict[str, Any] = {}
        self._lock = threading.RLock()

    def set(self, key: str, value: Any) -> None:
        """Store a value in shared state.

        Args:
            key: Storage key
            value: Value to store
        """
        with self._lock:
            self._store[key] = value

    def replace(self, key: str, value: Any) -> list[str]:
        """Store a value and drop every result derived from the previous one.

        Args:
            key: Storage key
            value: Value to store

        Returns:
            Keys that were invalidated
        """
        with self._lock:
            invalidated = [
                k for k in DOWNSTREAM_KEYS.get(key, ()) if self._store.pop(k, None) is not None
            ]
            self.set(key, value)
            return invalidated

    def get(self, key: str, default: Any = None) -> Any:
        """Retrieve a value from shared state.

        Args:
            key: Storage key
            default: Value to return if key not found

        Returns:
            Stored value or default
        """
        with self._lock:
            return self._store.get(key, default)

    def has(self, key: str) -> bool:
        """Check if a key exists in shared state."""
        with self._lock:
            return key in self._store

    def clear(self) -> None:
        """Clear all stored state."""
        with self._lock:
            self._store.clear()

    def keys(self) -> list[str]:
        """Get all keys in shared state.

        Returns:
            List of all storage keys (copy, not live view)
        """
        with self._lock:
            return list(self._store.keys())


# Global shared state instance
_shared_state = SharedState()


def get_shared_state() -> SharedState:
    """Get the global shared state instance."""
    return _shared_state
