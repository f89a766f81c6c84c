"""
Test helper utilities for the power pricing test suite.

Fakes for the upstream pricing API and the ZIP geocoders, served through
``httpx.MockTransport``, plus a controllable clock.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from power_pricing.services.territory import ONCOR_DUNS


class FakeClock:
    """Callable clock returning epoch seconds that only moves when told to"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeSleep:
    """Records the delays the pricing client asked to sleep for"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


def raw_plan(
    plan_id: str = "plan-001",
    name: str = "Simple Saver 12",
    brand: str = "4Change Energy",
    puct_number: Optional[str] = "10041",
    rate_cents: float = 13.9,
    term: int = 12,
    percent_green: int = 0,
    is_pre_pay: bool = False,
    is_time_of_use: bool = False,
    headline: str = "Fixed rate for 12 months",
    tdsp_duns: str = ONCOR_DUNS,
) -> Dict[str, Any]:
    """A plan object in the upstream pricing API shape"""
    return {
        "_id": plan_id,
        "product": {
            "name": name,
            "family": name.lower().replace(" ", "-"),
            "headline": headline,
            "term": term,
            "percent_green": percent_green,
            "is_pre_pay": is_pre_pay,
            "is_time_of_use": is_time_of_use,
            "requires_auto_pay": False,
            "early_termination_fee": 150,
            "brand": {
                "name": brand,
                "puct_number": puct_number,
                "legal_name": f"{brand} LLC",
                "contact_info": {"support": {"phone_number": "(855) 555-0100", "email": "help@example.com"}},
            },
        },
        "display_pricing_500": {"avg_cents": rate_cents + 2.5, "total": round((rate_cents + 2.5) * 5, 2)},
        "display_pricing_1000": {"avg_cents": rate_cents, "total": round(rate_cents * 10, 2)},
        "display_pricing_2000": {"avg_cents": rate_cents - 0.8, "total": round((rate_cents - 0.8) * 20, 2)},
        "tdsp": {"duns_number": tdsp_duns, "name": "Oncor Electric Delivery"},
        "document_links": [
            {"type": "EFL", "language": "es", "link": "https://docs.example.com/efl-es.pdf"},
            {"type": "EFL", "language": "en", "link": "https://docs.example.com/efl.pdf"},
            {"type": "TOS", "language": "en", "link": "https://docs.example.com/tos.pdf"},
        ],
    }


class FakePricingAPI:
    """Stand-in for ``/api/plans/current``.

    ``failures`` makes the next N calls answer with ``failure_status``;
    ``body`` overrides the JSON payload with raw text.
    """

    def __init__(self):
        self.plans: List[Dict[str, Any]] = [raw_plan()]
        self.status_code = 200
        self.failures = 0
        self.failure_status = 503
        self.body: Optional[str] = None
        self.requests: List[httpx.Request] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def fail_always(self, status_code: int = 503):
        self.failures = 10_000
        self.failure_status = status_code

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.failures > 0:
            self.failures -= 1
            return httpx.Response(self.failure_status, json={"error": "upstream unavailable"})
        if self.body is not None:
            return httpx.Response(self.status_code, text=self.body)
        return httpx.Response(self.status_code, json=self.plans)


class FakeGeocoderAPI:
    """Stand-in for the USPS, ZipCodeAPI and GeoNames endpoints.

    Providers answer 404 unless a payload was registered for them;
    ``delays`` holds a per-provider latency in seconds.
    """

    HOSTS = {
        "tools.usps.com": "usps",
        "www.zipcodeapi.com": "zipcodeapi",
        "api.geonames.org": "geonames",
    }

    def __init__(self):
        self.payloads: Dict[str, Dict[str, Any]] = {}
        self.delays: Dict[str, float] = {}
        self.requests: List[httpx.Request] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def usps(self, city: str, county: str = ""):
        self.payloads["usps"] = {"resultStatus": "SUCCESS", "cityName": city, "state": "TX", "countyName": county}

    def zipcodeapi(self, city: str, lat: float, lng: float, state: str = "TX"):
        self.payloads["zipcodeapi"] = {"city": city, "state": state, "lat": lat, "lng": lng}

    def geonames(self, city: str, lat: float, lng: float, county: str = ""):
        self.payloads["geonames"] = {
            "postalCodes": [
                {"placeName": city, "adminCode1": "TX", "adminName2": county, "lat": lat, "lng": lng},
            ]
        }

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        provider = self.HOSTS.get(request.url.host)
        if provider in self.delays:
            await asyncio.sleep(self.delays[provider])
        if provider not in self.payloads:
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(200, json=self.payloads[provider])


class UpstreamRouter:
    """Dispatch requests to the fake pricing API or the fake geocoders by host"""

    def __init__(self, pricing_api: FakePricingAPI, geocoder_api: FakeGeocoderAPI):
        self.pricing_api = pricing_api
        self.geocoder_api = geocoder_api

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host in FakeGeocoderAPI.HOSTS:
            return await self.geocoder_api(request)
        return self.pricing_api(request)
