"""ZIP validation Pydantic schemas"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ZipValidateRequest(BaseModel):
    """Request schema for ZIP validation"""
    zipCode: str = Field(..., max_length=10, description="5-digit Texas ZIP code")


class ZipValidationResponse(BaseModel):
    """ZIP validation result"""
    zipCode: str
    isValid: bool
    isTexas: bool
    isDeregulated: bool
    cityData: Optional[Dict[str, Any]] = None
    tdspData: Optional[Dict[str, Any]] = None
    errorCode: Optional[str] = None
    errorMessage: Optional[str] = None
    suggestions: Optional[List[str]] = None
    confidence: Optional[int] = None
    source: str = Field(..., description="static or geocoder:<provider>")
    validationTime: int = Field(..., description="Resolution time in milliseconds")
    processedAt: str


class DeregulatedArea(BaseModel):
    """A city in the competitive market"""
    cityName: str
    citySlug: str
    zipCodeCount: int
    planCount: int
    tdspName: str
    region: str


class CityPlansAvailability(BaseModel):
    """Whether plans can be shown for a city"""
    plansAvailable: bool
    planCount: Optional[int] = None
    citySlug: Optional[str] = None
    lastUpdated: Optional[str] = None
    reason: Optional[str] = Field(None, description="CITY_NOT_FOUND, NO_PLANS_AVAILABLE or TDSP_NOT_SUPPORTED")


class TdspTerritory(BaseModel):
    """A TDSP and the mapped ZIP codes it serves"""
    duns: str
    name: str
    displayName: str
    abbreviation: str
    isDeregulated: bool
    marketZone: Optional[str] = None
    zipCodes: List[str]
    zipCodeCount: int
