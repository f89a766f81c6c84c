"""Idempotency-key guard for mutating or expensive requests"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

import structlog

logger = structlog.get_logger()

IDEMPOTENCY_HEADERS = ("x-idempotency-key", "idempotency-key")


class IdempotencyStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class IdempotencyEntry:
    key: str
    status: IdempotencyStatus
    created_at: float
    expires_at: float
    response: Any = None
    completed_at: Optional[float] = None
    payload: Any = None

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class IdempotencyResult:
    is_duplicate: bool
    should_process: bool
    existing_response: Any = None
    status: Optional[IdempotencyStatus] = None


class IdempotencyManager:
    """Tracks idempotency keys per client: processing, then completed or failed.

    Entries live for ``ttl_seconds`` from first use regardless of state; an
    expired key behaves like a new one.
    """

    def __init__(self, ttl_seconds: float = 3600, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.entries: Dict[str, IdempotencyEntry] = {}

    @staticmethod
    def _entry_key(key: str, client_id: str) -> str:
        return f"{client_id}:{key}"

    def _start(self, entry_key: str, payload: Any, now: float) -> IdempotencyResult:
        self.entries[entry_key] = IdempotencyEntry(
            key=entry_key,
            status=IdempotencyStatus.PROCESSING,
            created_at=now,
            expires_at=now + self.ttl_seconds,
            payload=payload,
        )
        return IdempotencyResult(is_duplicate=False, should_process=True, status=IdempotencyStatus.PROCESSING)

    def check_idempotency(self, key: Optional[str], client_id: str, payload: Any = None) -> IdempotencyResult:
        """Decide whether a request carrying ``key`` should run"""
        if not key:
            return IdempotencyResult(is_duplicate=False, should_process=True)

        entry_key = self._entry_key(key, client_id)
        now = self.clock()
        entry = self.entries.get(entry_key)

        if entry is None or entry.is_expired(now):
            return self._start(entry_key, payload, now)

        if entry.status == IdempotencyStatus.COMPLETED:
            logger.info("Idempotent replay", key=key, client_id=client_id)
            return IdempotencyResult(
                is_duplicate=True,
                should_process=False,
                existing_response=entry.response,
                status=IdempotencyStatus.COMPLETED,
            )

        if entry.status == IdempotencyStatus.PROCESSING:
            logger.warning("Duplicate request while processing", key=key, client_id=client_id)
            return IdempotencyResult(is_duplicate=True, should_process=False, status=IdempotencyStatus.PROCESSING)

        # Failed requests may be retried with the same key
        logger.info("Retrying failed idempotent request", key=key, client_id=client_id)
        return self._start(entry_key, payload, now)

    def store_idempotent_response(self, key: Optional[str], client_id: str, response: Any):
        """Mark the key completed and keep its response for replays"""
        if not key:
            return
        now = self.clock()
        entry_key = self._entry_key(key, client_id)
        entry = self.entries.get(entry_key)
        if entry is None:
            entry = IdempotencyEntry(
                key=entry_key,
                status=IdempotencyStatus.COMPLETED,
                created_at=now,
                expires_at=now + self.ttl_seconds,
            )
            self.entries[entry_key] = entry

        entry.status = IdempotencyStatus.COMPLETED
        entry.response = response
        entry.completed_at = now

    def mark_failed(self, key: Optional[str], client_id: str):
        if not key:
            return
        entry = self.entries.get(self._entry_key(key, client_id))
        if entry is not None:
            entry.status = IdempotencyStatus.FAILED
            entry.completed_at = self.clock()

    def cleanup(self) -> int:
        """Drop expired entries"""
        now = self.clock()
        expired = [key for key, entry in self.entries.items() if entry.is_expired(now)]
        for key in expired:
            del self.entries[key]
        return len(expired)

    def clear(self):
        self.entries.clear()

    def get_stats(self) -> Dict[str, int]:
        stats = {status.value: 0 for status in IdempotencyStatus}
        for entry in self.entries.values():
            stats[entry.status.value] += 1
        stats["total"] = len(self.entries)
        return stats


def extract_idempotency_key(headers: Mapping[str, str]) -> Optional[str]:
    for name in IDEMPOTENCY_HEADERS:
        value = headers.get(name)
        if value:
            return value.strip()
    return None


def idempotency_headers(key: str, replay: bool = False) -> Dict[str, str]:
    headers = {"X-Idempotency-Key": key}
    if replay:
        headers["X-Idempotency-Replay"] = "true"
    return headers
