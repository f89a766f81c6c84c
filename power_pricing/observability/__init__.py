"""
Observability for the pricing service

Prometheus counters and histograms used across routers and services
"""

from .metrics import (
    REQUEST_COUNT,
    REQUEST_DURATION,
    ZIP_RESOLUTIONS,
    GEOCODER_RESULTS,
    CACHE_HITS,
    CACHE_MISSES,
    PRICING_API_CALLS,
    GUARD_REJECTIONS,
)

__all__ = [
    'REQUEST_COUNT',
    'REQUEST_DURATION',
    'ZIP_RESOLUTIONS',
    'GEOCODER_RESULTS',
    'CACHE_HITS',
    'CACHE_MISSES',
    'PRICING_API_CALLS',
    'GUARD_REJECTIONS',
]
