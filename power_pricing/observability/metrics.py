"""Prometheus metrics shared by the resolution and pricing services"""

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code']
)
REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration',
    ['method', 'endpoint']
)
ZIP_RESOLUTIONS = Counter(
    'zip_resolutions_total',
    'ZIP resolutions by outcome',
    ['outcome']
)
GEOCODER_RESULTS = Counter(
    'geocoder_results_total',
    'Geocoder lookups by provider and outcome',
    ['provider', 'outcome']
)
CACHE_HITS = Counter('cache_hits_total', 'Cache hits', ['tier'])
CACHE_MISSES = Counter('cache_misses_total', 'Cache misses', ['tier'])
PRICING_API_CALLS = Counter(
    'pricing_api_calls_total',
    'Upstream pricing API calls',
    ['outcome']
)
GUARD_REJECTIONS = Counter(
    'guard_rejections_total',
    'Requests rejected by the rate limiter or idempotency guard',
    ['guard']
)
