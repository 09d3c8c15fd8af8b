"""
API key rotation for spreading concurrent LLM calls across rate-limit buckets
"""
import itertools
import logging
import os
from typing import List, Optional

logger = logging.getLogger(__name__)


def load_api_keys() -> List[str]:
    """
    Collect the LLM credential pool from the environment.

    Sources (merged in this order, duplicates dropped):
    - OPENAI_API_KEYS: comma-separated list
    - OPENAI_API_KEY
    - OPENAI_API_KEY_1 .. OPENAI_API_KEY_N (stops at the first gap)
    """
    keys = []

    pooled = os.getenv("OPENAI_API_KEYS", "")
    keys.extend(k.strip() for k in pooled.split(",") if k.strip())

    single = os.getenv("OPENAI_API_KEY")
    if single:
        keys.append(single.strip())

    for i in itertools.count(1):
        numbered = os.getenv(f"OPENAI_API_KEY_{i}")
        if not numbered:
            break
        keys.append(numbered.strip())

    # Keep first occurrence order
    return list(dict.fromkeys(keys))


class KeyRotator:
    """Round-robin and worker-indexed selection over a fixed credential pool"""

    def __init__(self, api_keys: Optional[List[str]] = None):
        if api_keys is None:
            api_keys = load_api_keys()
        if not api_keys:
            raise ValueError("No LLM API keys found! Set OPENAI_API_KEYS or OPENAI_API_KEY in the environment")

        self._keys = list(api_keys)
        # next() on itertools.count is atomic under the GIL and never suspends
        self._cursor = itertools.count()

        logger.info(f"🔑 Loaded {len(self._keys)} API keys for load balancing")

    def __len__(self) -> int:
        return len(self._keys)

    def next_key(self) -> str:
        """Return the next key in round-robin order (shared cursor)"""
        return self._keys[next(self._cursor) % len(self._keys)]

    def key_for_worker(self, worker_index: int) -> str:
        """Stable key for a worker index, so a worker keeps one rate-limit bucket"""
        return self._keys[worker_index % len(self._keys)]
