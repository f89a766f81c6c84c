"""Plan-related Pydantic schemas"""

import json
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class PlanSearchParams(BaseModel):
    """Parameters of a plan search against the pricing API"""
    tdsp_duns: str = Field(..., min_length=1, description="TDSP DUNS number")
    usage: int = Field(default=1000, gt=0, le=10000, description="Monthly usage in kWh")
    term: Optional[int] = Field(None, gt=0, le=60, description="Contract length in months")
    percent_green: Optional[int] = Field(None, ge=0, le=100, description="Minimum renewable percentage")
    is_pre_pay: Optional[bool] = Field(None, description="Prepaid plans only")
    is_time_of_use: Optional[bool] = Field(None, description="Time-of-use plans only")
    requires_auto_pay: Optional[bool] = Field(None, description="Auto-pay plans only")
    brand_id: Optional[str] = Field(None, description="Restrict to a single provider brand")

    @field_validator('tdsp_duns')
    @classmethod
    def validate_tdsp_duns(cls, v):
        if not v.isdigit():
            raise ValueError('TDSP DUNS must contain only digits')
        return v

    def cache_key(self) -> str:
        """Serialized parameter set; identical searches share one key"""
        return json.dumps(self.model_dump(exclude_none=True), sort_keys=True)

    def to_query_params(self) -> Dict[str, str]:
        """Query string for ``/api/plans/current``"""
        params = {
            "group": "default",
            "tdsp_duns": self.tdsp_duns,
            "display_usage": str(self.usage),
        }
        for name in ("term", "percent_green", "is_pre_pay", "is_time_of_use", "requires_auto_pay", "brand_id"):
            value = getattr(self, name)
            if value is None:
                continue
            params[name] = str(value).lower() if isinstance(value, bool) else str(value)
        return params


class PlanProvider(BaseModel):
    name: str
    logo: Optional[str] = None
    rating: float = 0.0
    review_count: int = 0
    puct_number: Optional[str] = None
    legal_name: Optional[str] = None
    support_phone: Optional[str] = None
    support_email: Optional[str] = None


class PlanPricing(BaseModel):
    """Rates in cents/kWh and monthly totals in dollars"""
    rate_500kwh: float = 0.0
    rate_1000kwh: float = 0.0
    rate_2000kwh: float = 0.0
    rate_per_kwh: float = 0.0
    total_500kwh: float = 0.0
    total_1000kwh: float = 0.0
    total_2000kwh: float = 0.0


class PlanContract(BaseModel):
    length: int = 0
    type: str = Field(default="fixed", description="fixed, variable or indexed")
    early_termination_fee: float = 0.0
    auto_renewal: bool = False
    satisfaction_guarantee: bool = False

    @field_validator('type')
    @classmethod
    def validate_type(cls, v):
        if v not in {"fixed", "variable", "indexed"}:
            raise ValueError('Rate type must be fixed, variable or indexed')
        return v


class FreeTime(BaseModel):
    hours: str
    days: List[str]


class PlanDeposit(BaseModel):
    required: bool = False
    amount: float = 0.0


class PlanFeatures(BaseModel):
    green_energy: int = 0
    bill_credit: float = 0.0
    free_time: Optional[FreeTime] = None
    deposit: PlanDeposit = Field(default_factory=PlanDeposit)
    requires_auto_pay: bool = False


class Plan(BaseModel):
    """Electricity plan in the shape served to the rest of the app"""
    id: str = Field(..., description="Externally issued plan identifier")
    name: str
    family: Optional[str] = None
    headline: Optional[str] = None
    description: Optional[str] = None
    provider: PlanProvider
    pricing: PlanPricing = Field(default_factory=PlanPricing)
    contract: PlanContract = Field(default_factory=PlanContract)
    features: PlanFeatures = Field(default_factory=PlanFeatures)
    tdsp_duns: Optional[str] = None
    service_areas: List[str] = Field(default_factory=list)
    efl_link: Optional[str] = None
    tos_link: Optional[str] = None
    yrac_link: Optional[str] = None
    is_time_of_use: bool = False


class PlanSearchResponse(BaseModel):
    """Plans for a search plus where they came from"""
    plans: List[Plan]
    count: int
    source: str = Field(..., description="sql_cache, api, sql_active or file")
    tdsp_duns: str


class StoredPlanResponse(BaseModel):
    """Plan row as persisted in the plan tables"""
    id: int
    external_id: str
    name: str
    provider_name: Optional[str] = None
    tdsp_duns: str
    term_months: int
    rate_type: str
    percent_green: int
    rate_1000kwh: Optional[float] = None
    total_1000kwh: Optional[float] = None
    is_pre_pay: bool
    is_active: bool
