"""Database models for the Texas Power Pricing API"""

from .plans import Provider, ElectricityPlan, PlanCache, ApiLog

__all__ = [
    "Provider",
    "ElectricityPlan",
    "PlanCache",
    "ApiLog",
]
