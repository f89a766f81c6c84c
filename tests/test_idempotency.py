"""Idempotency guard tests"""

from power_pricing.services.idempotency import (
    IdempotencyStatus,
    extract_idempotency_key,
    idempotency_headers,
)


def test_requests_without_key_always_process(idempotency):
    first = idempotency.check_idempotency(None, "client-a")
    second = idempotency.check_idempotency("", "client-a")

    assert first.should_process and second.should_process
    assert not first.is_duplicate
    assert idempotency.entries == {}


def test_first_use_starts_processing(idempotency):
    result = idempotency.check_idempotency("key-1", "client-a", {"tdsp_duns": "957877905"})

    assert result.should_process
    assert not result.is_duplicate
    assert result.status == IdempotencyStatus.PROCESSING
    assert idempotency.entries["client-a:key-1"].payload == {"tdsp_duns": "957877905"}


def test_duplicate_while_processing(idempotency):
    idempotency.check_idempotency("key-1", "client-a")
    result = idempotency.check_idempotency("key-1", "client-a")

    assert result.is_duplicate
    assert not result.should_process
    assert result.status == IdempotencyStatus.PROCESSING


def test_completed_request_is_replayed(idempotency):
    idempotency.check_idempotency("key-1", "client-a")
    idempotency.store_idempotent_response("key-1", "client-a", {"count": 3})

    result = idempotency.check_idempotency("key-1", "client-a")

    assert result.is_duplicate
    assert not result.should_process
    assert result.status == IdempotencyStatus.COMPLETED
    assert result.existing_response == {"count": 3}


def test_failed_request_may_be_retried(idempotency, clock):
    idempotency.check_idempotency("key-1", "client-a")
    idempotency.mark_failed("key-1", "client-a")
    clock.advance(10)

    result = idempotency.check_idempotency("key-1", "client-a")

    assert result.should_process
    assert not result.is_duplicate
    entry = idempotency.entries["client-a:key-1"]
    assert entry.status == IdempotencyStatus.PROCESSING
    assert entry.expires_at == clock() + 3600


def test_keys_are_scoped_per_client(idempotency):
    idempotency.check_idempotency("key-1", "client-a")
    result = idempotency.check_idempotency("key-1", "client-b")

    assert result.should_process
    assert not result.is_duplicate


def test_expired_key_behaves_like_new(idempotency, clock):
    idempotency.check_idempotency("key-1", "client-a")
    idempotency.store_idempotent_response("key-1", "client-a", {"count": 3})
    clock.advance(3601)

    result = idempotency.check_idempotency("key-1", "client-a")

    assert result.should_process
    assert result.existing_response is None


def test_store_without_prior_check(idempotency):
    idempotency.store_idempotent_response("key-9", "client-a", {"ok": True})

    assert idempotency.check_idempotency("key-9", "client-a").existing_response == {"ok": True}


def test_cleanup_and_stats(idempotency, clock):
    idempotency.check_idempotency("key-1", "client-a")
    idempotency.check_idempotency("key-2", "client-a")
    idempotency.store_idempotent_response("key-2", "client-a", {})
    idempotency.check_idempotency("key-3", "client-a")
    idempotency.mark_failed("key-3", "client-a")

    assert idempotency.get_stats() == {"processing": 1, "completed": 1, "failed": 1, "total": 3}

    clock.advance(3601)
    assert idempotency.cleanup() == 3
    assert idempotency.get_stats()["total"] == 0


def test_extract_idempotency_key():
    assert extract_idempotency_key({"x-idempotency-key": " abc "}) == "abc"
    assert extract_idempotency_key({"idempotency-key": "def"}) == "def"
    assert extract_idempotency_key({}) is None


def test_idempotency_headers():
    assert idempotency_headers("abc") == {"X-Idempotency-Key": "abc"}
    assert idempotency_headers("abc", replay=True)["X-Idempotency-Replay"] == "true"
