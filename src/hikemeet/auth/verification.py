"""Email verification codes backed by Redis.

Codes are 5-digit strings stored under ``verify:code:{email}`` with a TTL.
A second request while the cooldown key is alive is refused. A code is
consumed exactly once: the first successful check deletes it, and too many
wrong guesses delete it as well. The password-reset token a code is
exchanged for is single-use too: its ``jti`` is recorded on redemption.
"""

from __future__ import annotations

import hmac
import secrets
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import structlog

from hikemeet.errors import ValidationError

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = structlog.get_logger()

CODE_KEY = "verify:code:{email}"
REDEEMED_KEY = "verify:redeemed:{token_id}"
COOLDOWN_KEY = "verify:cooldown:{email}"
ATTEMPTS_KEY = "verify:attempts:{email}"


def generate_code() -> str:
    """Random 5-digit code (10000-99999)."""
    return str(10000 + secrets.randbelow(90000))


class VerificationCodeStore(ABC):
    """Issues and consumes single-use verification codes keyed by email."""

    @abstractmethod
    async def issue(self, email: str) -> str:
        """Create a code for ``email``. Raises ValidationError during the cooldown."""
        ...

    @abstractmethod
    async def consume(self, email: str, code: str) -> bool:
        """Check ``code`` and delete it on success. Returns False if wrong or expired."""
        ...

    @abstractmethod
    async def discard(self, email: str) -> None:
        """Drop any outstanding code for ``email``."""
        ...

    @abstractmethod
    async def redeem(self, token_id: str, ttl_seconds: int) -> bool:
        """Mark a reset token as used. False if it was already redeemed."""
        ...


class RedisVerificationCodeStore(VerificationCodeStore):
    """Verification codes with Redis TTLs."""

    def __init__(
        self,
        redis: Redis,
        ttl_seconds: int = 300,
        cooldown_seconds: int = 60,
        max_attempts: int = 5,
    ) -> None:
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self.cooldown_seconds = cooldown_seconds
        self.max_attempts = max_attempts

    async def issue(self, email: str) -> str:
        email = email.lower()
        started = await self.redis.set(COOLDOWN_KEY.format(email=email), "1", nx=True, ex=self.cooldown_seconds)
        if not started:
            msg = "Please wait before requesting another code."
            raise ValidationError(msg)

        code = generate_code()
        pipe = self.redis.pipeline()
        pipe.set(CODE_KEY.format(email=email), code, ex=self.ttl_seconds)
        pipe.delete(ATTEMPTS_KEY.format(email=email))
        await pipe.execute()
        logger.info("verification_code_issued", email=email)
        return code

    async def consume(self, email: str, code: str) -> bool:
        email = email.lower()
        code_key = CODE_KEY.format(email=email)
        stored = await self.redis.get(code_key)
        if stored is None:
            return False

        if not hmac.compare_digest(str(stored), code.strip()):
            attempts_key = ATTEMPTS_KEY.format(email=email)
            attempts = await self.redis.incr(attempts_key)
            await self.redis.expire(attempts_key, self.ttl_seconds)
            if attempts >= self.max_attempts:
                await self.discard(email)
                logger.warning("verification_code_locked", email=email)
            return False

        # Only the request that actually deletes the key wins.
        deleted = await self.redis.delete(code_key)
        await self.redis.delete(ATTEMPTS_KEY.format(email=email))
        return deleted == 1

    async def discard(self, email: str) -> None:
        email = email.lower()
        await self.redis.delete(CODE_KEY.format(email=email), ATTEMPTS_KEY.format(email=email))

    async def redeem(self, token_id: str, ttl_seconds: int) -> bool:
        first = await self.redis.set(REDEEMED_KEY.format(token_id=token_id), "1", nx=True, ex=max(1, ttl_seconds))
        return bool(first)
