"""Confirmation state store - one pending yes/no proposal per session.

Provides:
- Redis backend: JSON records under a key prefix, with a server-side TTL
- Fallback: In-memory dict when Redis is unavailable or not configured

Expiry is always decided on read against ``created_at`` and an injectable
clock; an expired record is deleted by the read that finds it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from redis.exceptions import RedisError

from skillrouter.exceptions import ConfirmationStoreError
from skillrouter.models.decisions import ProposedSkill

if TYPE_CHECKING:
    import redis.asyncio as redis

    from skillrouter.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_SESSION = "default"
DEFAULT_TTL_SECONDS = 300
CREATE_SKILL = "create_skill"


@dataclass
class PendingConfirmation:
    """An outstanding proposal waiting for the user's yes/no."""

    session_id: str
    proposed_skill: ProposedSkill
    original_input: str
    created_at: float
    kind: str = CREATE_SKILL
    confidence: float = 0.0
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "kind": self.kind,
            "proposed_skill": self.proposed_skill.model_dump(by_alias=True),
            "original_input": self.original_input,
            "created_at": self.created_at,
            "confidence": self.confidence,
            "extra": self.extra,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingConfirmation:
        return cls(
            session_id=data["session_id"],
            kind=data.get("kind", CREATE_SKILL),
            proposed_skill=ProposedSkill.model_validate(data["proposed_skill"]),
            original_input=data.get("original_input", ""),
            created_at=float(data["created_at"]),
            confidence=float(data.get("confidence", 0.0)),
            extra=data.get("extra") or {},
        )


@dataclass
class _SessionLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class ConfirmationStore:
    """Session-keyed pending confirmations with expire-on-read semantics."""

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        key_prefix: str = "skillrouter:confirmation:",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            redis_client: Optional Redis async client.
            ttl_seconds: Lifetime of a pending confirmation.
            key_prefix: Redis key prefix.
            clock: Returns the current time in seconds.
        """
        self._redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self._clock = clock

        self._fallback: dict[str, str] = {}
        self._locks: dict[str, _SessionLock] = {}

        self._initialized = False
        self._use_redis = False

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> ConfirmationStore:
        redis_client = None
        if settings.redis.enabled:
            import redis.asyncio as redis_asyncio

            redis_client = redis_asyncio.from_url(settings.redis.url, decode_responses=True)
        return cls(
            redis_client=redis_client,
            ttl_seconds=settings.router.confirmation_ttl_seconds,
            key_prefix=settings.redis.key_prefix,
            **kwargs,
        )

    async def init(self) -> None:
        """Check Redis availability; fall back to memory if it is down."""
        if self._initialized:
            return

        if self._redis:
            try:
                await self._redis.ping()
                self._use_redis = True
                logger.info("ConfirmationStore using Redis backend")
            except (RedisError, OSError) as e:
                logger.warning("Redis not available, using in-memory fallback: %s", e)
                self._use_redis = False
        else:
            logger.info("ConfirmationStore using in-memory fallback (no Redis client)")

        self._initialized = True

    async def shutdown(self) -> None:
        self._fallback.clear()
        self._locks.clear()
        self._initialized = False

    @asynccontextmanager
    async def _session(self, session_id: str) -> AsyncIterator[None]:
        """Hold the session's lock; the lock is dropped once nobody needs it."""
        entry = self._locks.get(session_id)
        if entry is None:
            entry = self._locks[session_id] = _SessionLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0 and self._locks.get(session_id) is entry:
                del self._locks[session_id]

    # =========================================================================
    # Public API - never raises on storage failure
    # =========================================================================

    async def get(self, session_id: str = DEFAULT_SESSION) -> PendingConfirmation | None:
        """Return the live record, or None if absent, expired or unreadable."""
        async with self._session(session_id):
            return await self._get_live(session_id)

    async def set(
        self,
        session_id: str,
        proposed_skill: ProposedSkill,
        original_input: str,
        confidence: float = 0.0,
        extra: dict[str, Any] | None = None,
    ) -> bool:
        """Store (or replace) the session's pending record. False on failure."""
        record = PendingConfirmation(
            session_id=session_id,
            proposed_skill=proposed_skill,
            original_input=original_input,
            created_at=self._clock(),
            confidence=confidence,
            extra=extra or {},
        )
        async with self._session(session_id):
            try:
                await self._write(session_id, json.dumps(record.to_dict()))
            except ConfirmationStoreError as e:
                logger.error("Failed to store pending confirmation for %s: %s", session_id, e)
                return False
        return True

    async def clear(self, session_id: str = DEFAULT_SESSION) -> None:
        """Delete the session's record unconditionally."""
        async with self._session(session_id):
            await self._clear(session_id)

    async def take(self, session_id: str = DEFAULT_SESSION) -> PendingConfirmation | None:
        """Atomically return and remove the live record.

        The read and the delete are one storage operation (GETDEL on Redis),
        so two workers sharing a server cannot both claim the same record.
        """
        async with self._session(session_id):
            try:
                raw = await self._pop(session_id)
            except ConfirmationStoreError as e:
                logger.error("Failed to take pending confirmation for %s: %s", session_id, e)
                return None
            # Already deleted, so unreadable or expired records need no cleanup
            record = self._decode(session_id, raw)
            if record is None or self._is_expired(record):
                return None
            return record

    # =========================================================================
    # Internals
    # =========================================================================

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    def _is_expired(self, record: PendingConfirmation) -> bool:
        return self._clock() - record.created_at >= self.ttl_seconds

    async def _get_live(self, session_id: str) -> PendingConfirmation | None:
        try:
            raw = await self._read(session_id)
        except ConfirmationStoreError as e:
            logger.error("Failed to read pending confirmation for %s: %s", session_id, e)
            return None
        if raw is None:
            return None

        record = self._decode(session_id, raw)
        if record is None:
            await self._clear(session_id)
            return None

        if self._is_expired(record):
            logger.debug("Pending confirmation for %s expired", session_id)
            await self._clear(session_id)
            return None
        return record

    def _decode(self, session_id: str, raw: str | None) -> PendingConfirmation | None:
        if raw is None:
            return None
        try:
            return PendingConfirmation.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding unreadable confirmation for %s: %s", session_id, e)
            return None

    async def _clear(self, session_id: str) -> None:
        try:
            await self._delete(session_id)
        except ConfirmationStoreError as e:
            logger.error("Failed to clear pending confirmation for %s: %s", session_id, e)

    async def _read(self, session_id: str) -> str | None:
        if self._use_redis and self._redis:
            try:
                data = await self._redis.get(self._key(session_id))
            except (RedisError, OSError) as e:
                raise ConfirmationStoreError(str(e)) from e
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            return data
        return self._fallback.get(self._key(session_id))

    async def _pop(self, session_id: str) -> str | None:
        if self._use_redis and self._redis:
            try:
                data = await self._redis.getdel(self._key(session_id))
            except (RedisError, OSError) as e:
                raise ConfirmationStoreError(str(e)) from e
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            return data
        return self._fallback.pop(self._key(session_id), None)

    async def _write(self, session_id: str, payload: str) -> None:
        if self._use_redis and self._redis:
            try:
                await self._redis.setex(self._key(session_id), self.ttl_seconds, payload)
            except (RedisError, OSError) as e:
                raise ConfirmationStoreError(str(e)) from e
        else:
            self._fallback[self._key(session_id)] = payload

    async def _delete(self, session_id: str) -> None:
        if self._use_redis and self._redis:
            try:
                await self._redis.delete(self._key(session_id))
            except (RedisError, OSError) as e:
                raise ConfirmationStoreError(str(e)) from e
        else:
            self._fallback.pop(self._key(session_id), None)
