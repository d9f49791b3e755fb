"""
Rate Limit Module

Fixed-window request and token budgets per client, stored in the KV store so
that limits hold across workers when a shared backend is configured.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from onemin_gateway.common.errors import RateLimitError
from onemin_gateway.common.time import epoch_millis
from onemin_gateway.config import Settings, get_settings
from onemin_gateway.repositories.kv_store_repo import KVStoreRepository

logger = logging.getLogger(__name__)

KEY_PREFIX = "rate-limit:"


def parse_rate_limit(limit: str) -> tuple[int, int]:
    """
    Parse rate limit string to requests count and window seconds.

    Args:
        limit: Rate limit string like "100/minute", "20/hour", etc.

    Returns:
        Tuple of (requests_count, window_seconds)

    Raises:
        ValueError: If rate limit format is invalid
    """
    parts = limit.lower().split("/")
    if len(parts) != 2:
        raise ValueError(f"Invalid rate limit format: {limit}")

    try:
        count = int(parts[0])
    except ValueError as exc:
        raise ValueError(f"Invalid request count in rate limit: {limit}") from exc

    unit = parts[1].strip()
    unit_multipliers = {
        "second": 1,
        "seconds": 1,
        "minute": 60,
        "minutes": 60,
        "hour": 3600,
        "hours": 3600,
        "day": 86400,
        "days": 86400,
    }

    if unit not in unit_multipliers:
        raise ValueError(f"Unknown time unit in rate limit: {unit}")

    return count, unit_multipliers[unit]


def get_client_id(request: Request) -> str:
    """
    Extract client identifier for rate limiting.

    Authorization header prefix first, then the forwarded client IP.
    """
    auth = request.headers.get("authorization") or request.headers.get("x-api-key")
    if auth:
        return f"auth:{auth[:20]}"

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_ip = forwarded.split(",")[0].strip()
        return f"ip:{first_ip}" if first_ip else "anonymous"

    return "anonymous"


@dataclass
class RateLimitRecord:
    request_count: int = 0
    token_count: int = 0
    window_start: int = 0

    def to_json(self) -> str:
        return json.dumps(
            {
                "requestCount": self.request_count,
                "tokenCount": self.token_count,
                "windowStart": self.window_start,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "RateLimitRecord":
        data = json.loads(raw)
        return cls(
            request_count=int(data.get("requestCount", 0)),
            token_count=int(data.get("tokenCount", 0)),
            window_start=int(data.get("windowStart", 0)),
        )


class RateLimiter:
    """
    KV-backed Rate Limiter

    Counters are read-modify-write without locking; concurrent requests may
    slightly overshoot the budget. KV errors allow the request.
    """

    def __init__(self, kv_repo: Optional[KVStoreRepository], settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.kv_repo = kv_repo
        self.enabled = settings.RATE_LIMIT_ENABLED and kv_repo is not None
        self.max_requests, self.window_seconds = parse_rate_limit(settings.RATE_LIMIT_REQUESTS)
        self.max_tokens = settings.RATE_LIMIT_MAX_TOKENS

        logger.info(
            "Rate limiter initialized: enabled=%s, requests=%s, max_tokens=%s",
            self.enabled,
            settings.RATE_LIMIT_REQUESTS,
            self.max_tokens,
        )

    async def is_allowed(self, client_id: str, token_count: int = 0) -> bool:
        """Check and record one request against the client's budget"""
        if not self.enabled:
            return True

        now = epoch_millis()
        window_ms = self.window_seconds * 1000
        key = f"{KEY_PREFIX}{client_id}"

        try:
            existing = await self.kv_repo.get(key)
            record = (
                RateLimitRecord.from_json(existing.value)
                if existing
                else RateLimitRecord(window_start=now)
            )

            if now - record.window_start >= window_ms:
                record = RateLimitRecord(window_start=now)

            if record.request_count >= self.max_requests:
                return False

            if self.max_tokens and record.token_count + token_count > self.max_tokens:
                return False

            record.request_count += 1
            record.token_count += token_count

            await self.kv_repo.set(key, record.to_json(), ttl_seconds=self.window_seconds + 60)
            return True
        except Exception as e:
            logger.error("Rate limiting error: %s", e)
            return True

    async def check(self, client_id: str, token_count: int = 0) -> None:
        """
        Enforce the budget

        Raises:
            RateLimitError: Budget exhausted for the current window
        """
        if not await self.is_allowed(client_id, token_count):
            logger.warning("Rate limit exceeded: client=%s tokens=%d", client_id, token_count)
            raise RateLimitError(
                message="Rate limit exceeded. Please try again later.",
                retry_after=self.window_seconds,
            )
