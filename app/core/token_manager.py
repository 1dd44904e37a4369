# app/core/token_manager.py
"""
Sequential token-id allocator for lazy-minted NFTs.

One TokenManager instance is created per process (see app.main lifespan) and
handed to request handlers through ``get_token_manager``. The counter lives
in memory; the database is only read once, at hydration time, to recover the
high-water mark.

Concurrency: the service runs on a single asyncio event loop. The increment
itself never awaits, but it is still done under ``_counter_lock`` so the
read-modify-write stays a critical section if an await is ever introduced
around it. Hydration has its own lock so concurrent first callers share one
database query instead of racing each other.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Optional, Protocol

from fastapi import Request

from app.core.utils import retry_with_backoff

logger = logging.getLogger(__name__)


class HydrationFailurePolicy(str, Enum):
    DEGRADE_TO_ZERO = "degrade-to-zero" # Log, start counter at 0 (perilaku lama)
    FAIL_CLOSED = "fail-closed"         # Raise, stay uninitialized, next call tries again
    RETRY = "retry"                     # Retry with backoff, then fail closed


# --- Errors ---
class TokenManagerError(Exception):
    """Base error for the token allocator."""

class TokenHydrationError(TokenManagerError):
    """Reading the highest persisted token id failed and the policy refuses to guess."""

class TokenReservationError(TokenManagerError):
    """An allocated id could not be written onto its NFT record."""


class TokenStore(Protocol):
    """Persistence boundary used by TokenManager."""

    async def find_highest_token_id(self) -> Optional[int]:
        ...

    async def set_reserved_token_id(self, entity_id: str, token_id: int) -> None:
        ...


def parse_token_id(raw: Any) -> Optional[int]:
    """Parse a persisted token id. Returns None for anything that is not a non-negative integer."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw >= 0 else None
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return value if value >= 0 else None


class TokenManager:
    def __init__(
        self,
        store: TokenStore,
        policy: HydrationFailurePolicy = HydrationFailurePolicy.DEGRADE_TO_ZERO,
        retry_attempts: int = 3,
        retry_delay: float = 0.5,
    ):
        self._store = store
        self._policy = HydrationFailurePolicy(policy)
        self._retry_attempts = max(0, retry_attempts)
        self._retry_delay = retry_delay
        self._current_token_id = 0
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._counter_lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def policy(self) -> HydrationFailurePolicy:
        return self._policy

    async def initialize(self) -> None:
        """Hydrate the counter from the store. Only the first successful call does any work."""
        if self._initialized:
            return
        async with self._init_lock:
            # Caller lain mungkin sudah selesai hydrate selama kita menunggu lock
            if self._initialized:
                return
            await self._hydrate()

    async def _hydrate(self) -> None:
        logger.debug(f"Hydrating token counter (policy={self._policy.value})")
        try:
            if self._policy == HydrationFailurePolicy.RETRY:
                highest = await retry_with_backoff(
                    self._store.find_highest_token_id,
                    max_retries=self._retry_attempts,
                    initial_delay=self._retry_delay,
                )
            else:
                highest = await self._store.find_highest_token_id()
        except Exception as e:
            if self._policy == HydrationFailurePolicy.DEGRADE_TO_ZERO:
                logger.error(f"Error initializing token counter, starting from 0: {e}", exc_info=True)
                self._current_token_id = 0
                self._initialized = True
                return
            logger.error(f"Token counter hydration failed (policy={self._policy.value}): {e}", exc_info=True)
            raise TokenHydrationError("Could not determine the highest persisted token id") from e

        self._current_token_id = highest if highest is not None else 0
        self._initialized = True
        logger.info(f"Token counter hydrated at {self._current_token_id}")

    async def get_next_token_id(self) -> int:
        """Return a fresh token id, strictly greater than any id this instance handed out before."""
        if not self._initialized:
            await self.initialize()

        async with self._counter_lock:
            self._current_token_id += 1
            token_id = self._current_token_id

        logger.debug(f"Allocated token id {token_id}")
        return token_id

    async def reserve_token_id(self, entity_id: str) -> int:
        """
        Allocate an id and write it onto the NFT's reserved_token_id.

        The id is consumed even when the write fails; it is never handed out again.
        """
        token_id = await self.get_next_token_id()
        try:
            await self._store.set_reserved_token_id(entity_id, token_id)
        except TokenReservationError:
            logger.error(f"Error reserving token id {token_id} for NFT '{entity_id}'")
            raise
        except Exception as e:
            logger.error(f"Error reserving token id {token_id} for NFT '{entity_id}': {e}", exc_info=True)
            raise TokenReservationError(f"Failed to persist reserved token id {token_id} for NFT '{entity_id}'") from e

        logger.info(f"Reserved token id {token_id} for NFT '{entity_id}'")
        return token_id

    def get_current_token_id(self) -> int:
        return self._current_token_id


# --- FastAPI dependency ---
def get_token_manager(request: Request) -> TokenManager:
    return request.app.state.token_manager
