"""Plan search, plan detail and availability endpoint tests"""

import pytest
from fastapi.testclient import TestClient

from power_pricing.services.rate_limit import SEARCH_LIMIT, generate_client_id
from power_pricing.services.territory import CENTERPOINT_DUNS, ONCOR_DUNS

TEST_CLIENT_ID = generate_client_id({"user-agent": "testclient"}, "testclient")


@pytest.mark.api
class TestPlanSearch:

    def test_search_from_api(self, client: TestClient, pricing_api):
        response = client.post("/api/plans/search", json={"tdsp_duns": ONCOR_DUNS, "usage": 1000})

        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "api"
        assert data["count"] == 1
        assert data["tdsp_duns"] == ONCOR_DUNS
        assert data["plans"][0]["provider"]["name"] == "4Change Energy"
        assert response.headers["X-RateLimit-Remaining"] == "99"
        assert pricing_api.calls == 1

    def test_repeat_search_uses_sql_cache(self, client: TestClient, pricing_api):
        client.post("/api/plans/search", json={"tdsp_duns": ONCOR_DUNS})
        response = client.post("/api/plans/search", json={"tdsp_duns": ONCOR_DUNS})

        assert response.json()["source"] == "sql_cache"
        assert pricing_api.calls == 1

    def test_upstream_down_falls_back_to_file(self, client: TestClient, pricing_api):
        pricing_api.fail_always()

        response = client.post("/api/plans/search?city_slug=dallas-tx", json={"tdsp_duns": ONCOR_DUNS})

        assert response.status_code == 200
        assert response.json()["source"] == "file"
        assert response.json()["count"] == 2

    def test_no_plans_anywhere(self, client: TestClient, pricing_api):
        pricing_api.fail_always()

        response = client.post("/api/plans/search", json={"tdsp_duns": CENTERPOINT_DUNS})

        assert response.status_code == 200
        assert response.json()["source"] == "none"
        assert response.json()["plans"] == []

    def test_invalid_tdsp_duns(self, client: TestClient):
        response = client.post("/api/plans/search", json={"tdsp_duns": "oncor"})
        assert response.status_code == 422

    def test_rate_limited(self, client: TestClient, services, pricing_api):
        for _ in range(SEARCH_LIMIT.max_requests):
            services.rate_limiter.check_rate_limit(TEST_CLIENT_ID, "plans-search", SEARCH_LIMIT)

        response = client.post("/api/plans/search", json={"tdsp_duns": ONCOR_DUNS})

        assert response.status_code == 429
        assert response.json()["code"] == "RATE_LIMITED"
        assert int(response.headers["Retry-After"]) >= 1
        assert pricing_api.calls == 0


@pytest.mark.api
class TestPlanSearchIdempotency:

    def test_completed_key_is_replayed(self, client: TestClient, services):
        headers = {"X-Idempotency-Key": "search-1"}

        first = client.post("/api/plans/search", json={"tdsp_duns": ONCOR_DUNS}, headers=headers)
        second = client.post("/api/plans/search", json={"tdsp_duns": ONCOR_DUNS}, headers=headers)

        assert first.headers["X-Idempotency-Key"] == "search-1"
        assert "X-Idempotency-Replay" not in first.headers
        assert second.status_code == 200
        assert second.headers["X-Idempotency-Replay"] == "true"
        assert second.json() == first.json()
        assert second.json()["source"] == "api"

        records = services.rate_limiter.entries[SEARCH_LIMIT.key_for(TEST_CLIENT_ID, "plans-search")].requests
        assert [record.success for record in records] == [True, True]

    def test_key_in_flight_is_rejected(self, client: TestClient, services, pricing_api):
        services.idempotency.check_idempotency("search-2", TEST_CLIENT_ID)

        response = client.post(
            "/api/plans/search",
            json={"tdsp_duns": ONCOR_DUNS},
            headers={"Idempotency-Key": "search-2"},
        )

        assert response.status_code == 409
        assert response.json()["code"] == "REQUEST_IN_PROGRESS"
        assert response.headers["Retry-After"] == "5"
        records = services.rate_limiter.entries[SEARCH_LIMIT.key_for(TEST_CLIENT_ID, "plans-search")].requests
        assert records[-1].success is False
        assert pricing_api.calls == 0

    def test_keys_are_independent(self, client: TestClient, pricing_api):
        client.post("/api/plans/search", json={"tdsp_duns": ONCOR_DUNS}, headers={"X-Idempotency-Key": "a"})
        response = client.post(
            "/api/plans/search",
            json={"tdsp_duns": CENTERPOINT_DUNS},
            headers={"X-Idempotency-Key": "b"},
        )

        assert "X-Idempotency-Replay" not in response.headers
        assert response.json()["tdsp_duns"] == CENTERPOINT_DUNS


@pytest.mark.api
class TestStoredPlans:

    def test_get_plan_after_search(self, client: TestClient):
        client.post("/api/plans/search", json={"tdsp_duns": ONCOR_DUNS})

        response = client.get("/api/plans/plan-001")

        assert response.status_code == 200
        data = response.json()
        assert data["external_id"] == "plan-001"
        assert data["provider_name"] == "4Change Energy"
        assert data["tdsp_duns"] == ONCOR_DUNS
        assert data["rate_1000kwh"] == 13.9

    def test_unknown_plan(self, client: TestClient):
        response = client.get("/api/plans/does-not-exist")

        assert response.status_code == 404
        assert response.json()["error"] == "Plan not found"

    def test_city_availability(self, client: TestClient):
        response = client.get("/api/cities/dallas-tx/plans/availability")

        assert response.status_code == 200
        assert response.json()["plansAvailable"] is True
        assert response.json()["planCount"] == 2

    def test_city_availability_unknown_city(self, client: TestClient):
        response = client.get("/api/cities/gotham-tx/plans/availability")

        assert response.status_code == 200
        assert response.json()["plansAvailable"] is False
        assert response.json()["reason"] == "CITY_NOT_FOUND"
