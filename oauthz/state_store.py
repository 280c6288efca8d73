"""
In-memory store for pending logins (state -> provider name).
Used between /login and /callback. Every state is single-use; a TTL keeps abandoned
logins from growing the table without bound.
"""
import logging
import secrets
import threading
import time
from dataclasses import dataclass

from oauthz.config import DEFAULT_STATE_TTL
from oauthz.errors import InvalidState

logger = logging.getLogger(__name__)

# 16 random bytes -> 32 hex chars
STATE_BYTES = 16


@dataclass(frozen=True)
class PendingLogin:
    state: str
    provider: str
    created_at: float

    def expired(self, ttl: float, now: float | None = None) -> bool:
        if now is None:
            now = time.monotonic()
        return (now - self.created_at) > ttl


class StateStore:
    """
    Correlates an outbound provider redirect with its callback.
    issue() and consume() serialize on one lock that only guards the dict.
    """

    def __init__(self, ttl: float = DEFAULT_STATE_TTL, clock=time.monotonic):
        self._ttl = ttl
        self._clock = clock
        self._pending: dict[str, PendingLogin] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def __contains__(self, state: object) -> bool:
        with self._lock:
            return state in self._pending

    def issue(self, provider: str) -> str:
        """Generate a fresh state for provider, record it and return it."""
        with self._lock:
            now = self._clock()
            self._clean_expired(now)
            state = secrets.token_hex(STATE_BYTES)
            while state in self._pending:
                state = secrets.token_hex(STATE_BYTES)
            self._pending[state] = PendingLogin(state=state, provider=provider, created_at=now)
            return state

    def consume(self, state: str) -> str:
        """
        Remove state and return the provider it was issued for.
        Raises InvalidState if it was never issued, already consumed or expired.
        """
        with self._lock:
            pending = self._pending.pop(state, None)
            now = self._clock()
        if pending is None or pending.expired(self._ttl, now):
            raise InvalidState("invalid oauth state")
        return pending.provider

    def _clean_expired(self, now: float) -> None:
        # insertion order is creation order, so stop at the first live entry
        dropped = 0
        while self._pending:
            oldest = next(iter(self._pending.values()))
            if not oldest.expired(self._ttl, now):
                break
            del self._pending[oldest.state]
            dropped += 1
        if dropped:
            logger.debug("Dropped %d expired pending logins", dropped)
