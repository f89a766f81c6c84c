"""Fixed-window request rate limiting per client and endpoint"""

import asyncio
import hashlib
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

import structlog

logger = structlog.get_logger()


@dataclass
class RateLimitConfig:
    """Window length, request ceiling and which outcomes are refunded"""
    window_seconds: float
    max_requests: int
    skip_successful_requests: bool = False
    skip_failed_requests: bool = False
    key_generator: Optional[Callable[[str, str], str]] = None

    def key_for(self, client_id: str, endpoint: str) -> str:
        if self.key_generator is not None:
            return self.key_generator(client_id, endpoint)
        return f"{client_id}:{endpoint}"


@dataclass(frozen=True)
class RateLimitResult:
    """Decision for one request; ``reset_time`` is epoch seconds"""
    allowed: bool
    remaining: int
    reset_time: float
    retry_after: Optional[int] = None


@dataclass
class RequestRecord:
    timestamp: float
    success: Optional[bool] = None


@dataclass
class RateLimitEntry:
    count: int
    reset_time: float
    requests: List[RequestRecord] = field(default_factory=list)


SEARCH_LIMIT = RateLimitConfig(window_seconds=60, max_requests=100)
BURST_LIMIT = RateLimitConfig(window_seconds=10, max_requests=20, skip_failed_requests=True)


class RateLimitManager:
    """In-process fixed-window counters.

    A window opens on the first request for a key and closes at its reset
    time; bursts straddling a window boundary are not smoothed. A background
    sweep drops closed windows (and expired idempotency entries, when a
    guard is attached).
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        cleanup_interval: float = 60,
        idempotency=None,
    ):
        self.clock = clock
        self.cleanup_interval = cleanup_interval
        self.idempotency = idempotency
        self.entries: Dict[str, RateLimitEntry] = {}
        self._task: Optional[asyncio.Task] = None

    def check_rate_limit(self, client_id: str, endpoint: str, config: RateLimitConfig) -> RateLimitResult:
        key = config.key_for(client_id, endpoint)
        now = self.clock()
        entry = self.entries.get(key)

        if entry is None or now >= entry.reset_time:
            entry = RateLimitEntry(
                count=1,
                reset_time=now + config.window_seconds,
                requests=[RequestRecord(timestamp=now)],
            )
            self.entries[key] = entry
            return RateLimitResult(
                allowed=True,
                remaining=config.max_requests - 1,
                reset_time=entry.reset_time,
            )

        if entry.count >= config.max_requests:
            retry_after = max(1, math.ceil(entry.reset_time - now))
            logger.warning(
                "Rate limit exceeded",
                key=key,
                count=entry.count,
                max_requests=config.max_requests,
                retry_after=retry_after,
            )
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_time=entry.reset_time,
                retry_after=retry_after,
            )

        entry.count += 1
        entry.requests.append(RequestRecord(timestamp=now))
        return RateLimitResult(
            allowed=True,
            remaining=config.max_requests - entry.count,
            reset_time=entry.reset_time,
        )

    def update_rate_limit_result(self, client_id: str, endpoint: str, success: bool, config: RateLimitConfig):
        """Record the outcome of the latest request, refunding it if the config skips that outcome"""
        entry = self.entries.get(config.key_for(client_id, endpoint))
        if entry is None or not entry.requests:
            return

        entry.requests[-1].success = success

        if (config.skip_successful_requests and success) or (config.skip_failed_requests and not success):
            entry.count = max(0, entry.count - 1)
            entry.requests.pop()

    def create_limiter(self, config: RateLimitConfig) -> Callable[[str, str], RateLimitResult]:
        """Bind a config so callers only pass client and endpoint"""
        def limiter(client_id: str, endpoint: str) -> RateLimitResult:
            return self.check_rate_limit(client_id, endpoint, config)
        return limiter

    def cleanup(self) -> int:
        """Delete entries whose window has closed"""
        now = self.clock()
        expired = [key for key, entry in self.entries.items() if now >= entry.reset_time]
        for key in expired:
            del self.entries[key]

        removed_idempotency = self.idempotency.cleanup() if self.idempotency is not None else 0
        if expired or removed_idempotency:
            logger.debug("Request guard sweep", rate_entries=len(expired), idempotency_entries=removed_idempotency)
        return len(expired)

    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.cleanup_interval)
            self.cleanup()

    def start(self):
        """Start the periodic sweep on the running event loop"""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    def clear_all(self):
        self.entries.clear()

    def clear_client(self, client_id: str) -> int:
        prefix = f"{client_id}:"
        keys = [key for key in self.entries if key.startswith(prefix)]
        for key in keys:
            del self.entries[key]
        return len(keys)

    def get_stats(self) -> Dict[str, Any]:
        now = self.clock()
        active = [entry for entry in self.entries.values() if now < entry.reset_time]
        return {
            "totalEntries": len(self.entries),
            "activeEntries": len(active),
            "totalRequests": sum(entry.count for entry in active),
        }


def generate_client_id(headers: Mapping[str, str], client_host: Optional[str] = None) -> str:
    """Client identity from the forwarded IP and a hash of the user agent"""
    forwarded = headers.get("x-forwarded-for")
    ip = (
        (forwarded.split(",")[0].strip() if forwarded else None)
        or headers.get("cf-connecting-ip")
        or headers.get("x-real-ip")
        or client_host
        or "unknown"
    )
    user_agent = headers.get("user-agent", "")
    ua_hash = hashlib.sha256(user_agent.encode("utf-8")).hexdigest()[:16]
    return f"{ip}:{ua_hash}"


def rate_limit_headers(result: RateLimitResult) -> Dict[str, str]:
    headers = {
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(int(math.ceil(result.reset_time))),
    }
    if not result.allowed and result.retry_after is not None:
        headers["Retry-After"] = str(result.retry_after)
    return headers
