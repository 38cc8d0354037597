"""
Server-side session storage for LTI launch contexts.

The browser only holds a signed session ID cookie; the launch context
(user, course, assignment, outcome callback) lives in Redis or, for
single-process development, in memory.  Entries expire after
``SESSION_TTL_SECONDS`` of inactivity.

The same store remembers OAuth nonces so a captured launch cannot be
replayed inside the timestamp window.
"""

from __future__ import annotations

import json
import logging
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Optional

from itsdangerous import BadSignature, Signer

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "lti_audio_sid"


@dataclass
class LaunchContext:
    """LTI launch data bound to a browser session."""

    user_id: str
    course_id: Optional[str] = None
    assignment_id: Optional[str] = None
    roles: Optional[str] = None
    lis_result_sourcedid: Optional[str] = None
    lis_outcome_service_url: Optional[str] = None
    consumer_key: Optional[str] = None

    @property
    def has_outcome_service(self) -> bool:
        return bool(self.lis_outcome_service_url and self.lis_result_sourcedid)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LaunchContext":
        fields = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in fields})


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionCookie:
    """Signs and verifies the session ID carried in the cookie."""

    def __init__(self, secret: str):
        self._signer = Signer(secret, salt="lti-audio-session")

    def sign(self, session_id: str) -> str:
        return self._signer.sign(session_id).decode("utf-8")

    def unsign(self, value: str | None) -> str | None:
        """Return the session ID, or None if the cookie is absent or tampered."""
        if not value:
            return None
        try:
            return self._signer.unsign(value).decode("utf-8")
        except BadSignature:
            logger.info("Rejected session cookie with bad signature")
            return None


class SessionStore(ABC):
    """Key/value store for launch contexts with idle expiry."""

    name: str = "abstract"

    def __init__(self, ttl_seconds: int = 86400):
        self.ttl_seconds = ttl_seconds

    @abstractmethod
    async def get(self, session_id: str) -> Optional[LaunchContext]:
        """Return the context and refresh its expiry, or None if expired."""

    @abstractmethod
    async def set(self, session_id: str, context: LaunchContext) -> None:
        """Create or overwrite a session."""

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Remove a session (no-op if missing)."""

    @abstractmethod
    async def claim_nonce(self, nonce: str, ttl_seconds: int) -> bool:
        """Record an OAuth nonce. Returns False if it was already used."""

    async def close(self) -> None:
        return None


class RedisSessionStore(SessionStore):
    """Stores sessions in Redis with automatic expiry."""

    name = "redis"
    _PREFIX = "lti_audio:session:"
    _NONCE_PREFIX = "lti_audio:nonce:"

    def __init__(self, redis_client, ttl_seconds: int = 86400):
        super().__init__(ttl_seconds)
        self._redis = redis_client

    @classmethod
    def from_url(
        cls, redis_url: str = "redis://localhost:6379/0", ttl_seconds: int = 86400
    ) -> "RedisSessionStore":
        """Create a store from a Redis URL using the asyncio client."""
        import redis.asyncio as aioredis

        client = aioredis.Redis.from_url(redis_url, decode_responses=True)
        return cls(client, ttl_seconds)

    def _prepare_key(self, session_id: str) -> str:
        return f"{self._PREFIX}{session_id}"

    async def get(self, session_id: str) -> Optional[LaunchContext]:
        key = self._prepare_key(session_id)
        value = await self._redis.get(key)
        if not value:
            return None
        try:
            data = json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return None
        await self._redis.expire(key, self.ttl_seconds)
        return LaunchContext.from_dict(data)

    async def set(self, session_id: str, context: LaunchContext) -> None:
        serialized = json.dumps(context.to_dict())
        await self._redis.setex(self._prepare_key(session_id), self.ttl_seconds, serialized)

    async def delete(self, session_id: str) -> None:
        await self._redis.delete(self._prepare_key(session_id))

    async def claim_nonce(self, nonce: str, ttl_seconds: int) -> bool:
        created = await self._redis.set(
            f"{self._NONCE_PREFIX}{nonce}", "1", nx=True, ex=ttl_seconds
        )
        return bool(created)

    async def close(self) -> None:
        await self._redis.aclose()


class MemorySessionStore(SessionStore):
    """In-process store for local development and single-worker deployments."""

    name = "memory"

    def __init__(self, ttl_seconds: int = 86400, clock=time.monotonic):
        super().__init__(ttl_seconds)
        self._clock = clock
        self._sessions: dict[str, tuple[float, dict[str, Any]]] = {}
        self._nonces: dict[str, float] = {}

    def _purge(self) -> None:
        now = self._clock()
        for sid in [s for s, (exp, _) in self._sessions.items() if exp <= now]:
            del self._sessions[sid]
        for nonce in [n for n, exp in self._nonces.items() if exp <= now]:
            del self._nonces[nonce]

    async def get(self, session_id: str) -> Optional[LaunchContext]:
        self._purge()
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        _, data = entry
        self._sessions[session_id] = (self._clock() + self.ttl_seconds, data)
        return LaunchContext.from_dict(data)

    async def set(self, session_id: str, context: LaunchContext) -> None:
        self._sessions[session_id] = (self._clock() + self.ttl_seconds, context.to_dict())

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    async def claim_nonce(self, nonce: str, ttl_seconds: int) -> bool:
        self._purge()
        if nonce in self._nonces:
            return False
        self._nonces[nonce] = self._clock() + ttl_seconds
        return True
