"""Provider, plan, plan cache and API log models"""

from datetime import datetime

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from power_pricing.database import Base


class Provider(Base):
    """Retail electricity providers"""

    __tablename__ = "providers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True)
    legal_name = Column(String(255), nullable=True)
    puct_number = Column(String(50), nullable=True, unique=True)  # PUCT retail license number
    logo_filename = Column(String(255), nullable=True)
    logo_url = Column(Text, nullable=True)
    contact_phone = Column(String(50), nullable=True)
    support_phone = Column(String(50), nullable=True)
    support_email = Column(String(255), nullable=True)
    support_address = Column(Text, nullable=True)
    rating = Column(Float, nullable=False, default=0.0)
    review_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    plans = relationship("ElectricityPlan", back_populates="provider")


class ElectricityPlan(Base):
    """Plans returned by the pricing API, one row per plan and TDSP"""

    __tablename__ = "electricity_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(100), nullable=False)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=True, index=True)
    tdsp_duns = Column(String(20), nullable=False)
    name = Column(String(255), nullable=False)
    family = Column(String(100), nullable=True)
    term_months = Column(Integer, nullable=False, default=0)
    rate_type = Column(String(20), nullable=False, default="fixed")
    percent_green = Column(Integer, nullable=False, default=0)
    headline = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    early_termination_fee = Column(Float, nullable=False, default=0.0)
    is_pre_pay = Column(Boolean, nullable=False, default=False)
    is_time_of_use = Column(Boolean, nullable=False, default=False)
    requires_auto_pay = Column(Boolean, nullable=False, default=False)

    # Rates in cents/kWh, totals in dollars
    rate_500kwh = Column(Float, nullable=True)
    rate_1000kwh = Column(Float, nullable=True)
    rate_2000kwh = Column(Float, nullable=True)
    total_500kwh = Column(Float, nullable=True)
    total_1000kwh = Column(Float, nullable=True)
    total_2000kwh = Column(Float, nullable=True)

    bill_credit = Column(Float, nullable=False, default=0.0)
    deposit_required = Column(Boolean, nullable=False, default=False)
    satisfaction_guarantee = Column(Boolean, nullable=False, default=False)
    auto_renewal = Column(Boolean, nullable=False, default=False)
    efl_link = Column(Text, nullable=True)
    tos_link = Column(Text, nullable=True)
    yrac_link = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    last_scraped_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    provider = relationship("Provider", back_populates="plans")

    __table_args__ = (
        UniqueConstraint("external_id", "tdsp_duns", name="uq_plans_external_tdsp"),
        Index("idx_plans_tdsp_active", "tdsp_duns", "is_active"),
        Index("idx_plans_rate_1000", "rate_1000kwh"),
    )


class PlanCache(Base):
    """Serialized plan lists keyed by search parameters"""

    __tablename__ = "plan_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cache_key = Column(String(500), nullable=False, unique=True)
    tdsp_duns = Column(String(20), nullable=False, index=True)
    plans_data = Column(JSON, nullable=False)
    plan_count = Column(Integer, nullable=False, default=0)
    lowest_rate = Column(Float, nullable=True)
    cached_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_plan_cache_expires", "expires_at"),
    )


class ApiLog(Base):
    """Outbound pricing API calls"""

    __tablename__ = "api_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    endpoint = Column(String(255), nullable=False)
    params = Column(JSON, nullable=True)
    response_status = Column(Integer, nullable=True)
    response_time_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
