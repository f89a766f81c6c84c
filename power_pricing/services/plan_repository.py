"""SQL-backed plan cache and plan storage"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from power_pricing.database import SessionLocal
from power_pricing.models.plans import ApiLog, ElectricityPlan, PlanCache, Provider
from power_pricing.schemas.plans import (
    Plan,
    PlanContract,
    PlanDeposit,
    PlanFeatures,
    PlanPricing,
    PlanProvider,
    PlanSearchParams,
)
from power_pricing.services.pricing_client import parse_time_of_use

logger = structlog.get_logger()

ACTIVE_PLAN_LIMIT = 50


class PlanRepository:
    """Persists plans and cached plan lists.

    Every public method degrades on database errors: the error is logged,
    the transaction rolled back, and an empty value returned.
    """

    def __init__(self, db: Session = None):
        self.db = db or SessionLocal()

    def _insert(self, model):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        raise NotImplementedError(f"Upsert not supported for dialect {dialect}")

    def _rollback(self):
        try:
            self.db.rollback()
        except SQLAlchemyError as e:
            logger.error("Rollback failed", error=str(e))

    def get_plans_from_cache(self, params: PlanSearchParams) -> Optional[List[Plan]]:
        """Fresh cached plans for a parameter set, or None"""
        try:
            row = (
                self.db.query(PlanCache)
                .filter(PlanCache.cache_key == params.cache_key())
                .filter(PlanCache.expires_at > datetime.utcnow())
                .first()
            )
            if row is None:
                return None
            return [Plan.model_validate(item) for item in row.plans_data]
        except SQLAlchemyError as e:
            logger.error("Error reading plan cache", tdsp_duns=params.tdsp_duns, error=str(e))
            self._rollback()
            return None
        except ValidationError as e:
            logger.warning("Discarding unreadable plan cache entry", tdsp_duns=params.tdsp_duns, error=str(e))
            return None

    def set_plans_cache(self, params: PlanSearchParams, plans: List[Plan], ttl_hours: float = 1) -> bool:
        """Insert or overwrite the cache row for a parameter set"""
        now = datetime.utcnow()
        rates = [p.pricing.rate_1000kwh for p in plans if p.pricing.rate_1000kwh > 0]
        values = {
            "cache_key": params.cache_key(),
            "tdsp_duns": params.tdsp_duns,
            "plans_data": [p.model_dump(mode="json") for p in plans],
            "plan_count": len(plans),
            "lowest_rate": min(rates) if rates else None,
            "cached_at": now,
            "expires_at": now + timedelta(hours=ttl_hours),
        }

        try:
            stmt = self._insert(PlanCache).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["cache_key"],
                set_={
                    "plans_data": stmt.excluded.plans_data,
                    "plan_count": stmt.excluded.plan_count,
                    "lowest_rate": stmt.excluded.lowest_rate,
                    "cached_at": stmt.excluded.cached_at,
                    "expires_at": stmt.excluded.expires_at,
                },
            )
            self.db.execute(stmt)
            self.db.commit()
            logger.info("Plans cached", tdsp_duns=params.tdsp_duns, plan_count=len(plans), ttl_hours=ttl_hours)
            return True
        except SQLAlchemyError as e:
            logger.error("Error writing plan cache", tdsp_duns=params.tdsp_duns, error=str(e))
            self._rollback()
            return False

    def ensure_provider_exists(self, provider: PlanProvider) -> Optional[int]:
        """Provider id, looked up by PUCT number (or name) and created if absent"""
        query = self.db.query(Provider)
        existing = None
        if provider.puct_number:
            existing = query.filter(Provider.puct_number == provider.puct_number).first()
        if existing is None:
            existing = query.filter(Provider.name == provider.name).first()
        if existing is not None:
            return existing.id

        row = Provider(
            name=provider.name,
            legal_name=provider.legal_name,
            puct_number=provider.puct_number,
            logo_url=provider.logo,
            support_phone=provider.support_phone,
            support_email=provider.support_email,
            rating=provider.rating,
            review_count=provider.review_count,
        )
        self.db.add(row)
        self.db.flush()
        logger.info("Provider created", name=provider.name, puct_number=provider.puct_number)
        return row.id

    def store_plans(self, plans: List[Plan], tdsp_duns: str) -> int:
        """Upsert plans keyed by (external id, TDSP DUNS); returns the number stored"""
        now = datetime.utcnow()
        stored = 0

        try:
            for plan in plans:
                if not plan.provider.name:
                    logger.warning("Skipping plan without provider", plan_id=plan.id)
                    continue

                provider_id = self.ensure_provider_exists(plan.provider)
                values = {
                    "external_id": plan.id,
                    "provider_id": provider_id,
                    "tdsp_duns": tdsp_duns,
                    "name": plan.name,
                    "family": plan.family,
                    "term_months": plan.contract.length,
                    "rate_type": plan.contract.type,
                    "percent_green": plan.features.green_energy,
                    "headline": plan.headline,
                    "description": plan.description,
                    "early_termination_fee": plan.contract.early_termination_fee,
                    "is_pre_pay": plan.features.deposit.required,
                    "is_time_of_use": plan.is_time_of_use,
                    "requires_auto_pay": plan.features.requires_auto_pay,
                    "rate_500kwh": plan.pricing.rate_500kwh,
                    "rate_1000kwh": plan.pricing.rate_1000kwh,
                    "rate_2000kwh": plan.pricing.rate_2000kwh,
                    "total_500kwh": plan.pricing.total_500kwh,
                    "total_1000kwh": plan.pricing.total_1000kwh,
                    "total_2000kwh": plan.pricing.total_2000kwh,
                    "bill_credit": plan.features.bill_credit,
                    "deposit_required": plan.features.deposit.required,
                    "satisfaction_guarantee": plan.contract.satisfaction_guarantee,
                    "auto_renewal": plan.contract.auto_renewal,
                    "efl_link": plan.efl_link,
                    "tos_link": plan.tos_link,
                    "yrac_link": plan.yrac_link,
                    "is_active": True,
                    "last_scraped_at": now,
                    "created_at": now,
                    "updated_at": now,
                }
                stmt = self._insert(ElectricityPlan).values(**values)
                update_columns = {
                    key: getattr(stmt.excluded, key)
                    for key in values
                    if key not in ("external_id", "tdsp_duns", "created_at")
                }
                stmt = stmt.on_conflict_do_update(
                    index_elements=["external_id", "tdsp_duns"],
                    set_=update_columns,
                )
                self.db.execute(stmt)
                stored += 1

            self.db.commit()
            logger.info("Plans stored", tdsp_duns=tdsp_duns, stored=stored, received=len(plans))
            return stored
        except SQLAlchemyError as e:
            logger.error("Error storing plans", tdsp_duns=tdsp_duns, error=str(e))
            self._rollback()
            return 0

    def get_active_plans(self, tdsp_duns: str, filters: Optional[Dict[str, Any]] = None) -> List[Plan]:
        """
        Active stored plans for a TDSP, cheapest first

        Args:
            tdsp_duns: TDSP DUNS number
            filters: optional ``term`` (exact), ``percent_green`` (minimum)
                and ``is_pre_pay`` (exact)

        Returns:
            Up to 50 plans ordered by 1000 kWh rate
        """
        filters = filters or {}
        try:
            query = (
                self.db.query(ElectricityPlan)
                .filter(ElectricityPlan.tdsp_duns == tdsp_duns)
                .filter(ElectricityPlan.is_active.is_(True))
            )
            if filters.get("term") is not None:
                query = query.filter(ElectricityPlan.term_months == filters["term"])
            if filters.get("percent_green") is not None:
                query = query.filter(ElectricityPlan.percent_green >= filters["percent_green"])
            if filters.get("is_pre_pay") is not None:
                query = query.filter(ElectricityPlan.is_pre_pay.is_(bool(filters["is_pre_pay"])))

            rows = query.order_by(ElectricityPlan.rate_1000kwh.asc()).limit(ACTIVE_PLAN_LIMIT).all()
            return [self._row_to_plan(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error("Error reading active plans", tdsp_duns=tdsp_duns, error=str(e))
            self._rollback()
            return []

    def get_active_plan_summary(self, tdsp_duns: str) -> Dict[str, Any]:
        """Count of active plans for a TDSP and when they were last refreshed"""
        try:
            count, last_scraped = (
                self.db.query(func.count(ElectricityPlan.id), func.max(ElectricityPlan.last_scraped_at))
                .filter(ElectricityPlan.tdsp_duns == tdsp_duns)
                .filter(ElectricityPlan.is_active.is_(True))
                .one()
            )
            return {"count": count or 0, "last_updated": last_scraped}
        except SQLAlchemyError as e:
            logger.error("Error summarizing plans", tdsp_duns=tdsp_duns, error=str(e))
            self._rollback()
            return {"count": 0, "last_updated": None}

    def get_plan_by_id(self, plan_id: str) -> Optional[ElectricityPlan]:
        """Stored plan by its externally issued id"""
        try:
            return (
                self.db.query(ElectricityPlan)
                .filter(ElectricityPlan.external_id == plan_id)
                .order_by(ElectricityPlan.updated_at.desc())
                .first()
            )
        except SQLAlchemyError as e:
            logger.error("Error reading plan", plan_id=plan_id, error=str(e))
            self._rollback()
            return None

    def log_api_call(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]],
        response_status: Optional[int],
        response_time_ms: int,
        error_message: Optional[str] = None,
    ):
        """Record an outbound pricing API call"""
        try:
            self.db.add(ApiLog(
                endpoint=endpoint,
                params=params,
                response_status=response_status,
                response_time_ms=response_time_ms,
                error_message=error_message,
            ))
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error("Error logging API call", endpoint=endpoint, error=str(e))
            self._rollback()

    def clean_expired_cache(self) -> int:
        """Delete expired plan cache rows"""
        try:
            deleted = (
                self.db.query(PlanCache)
                .filter(PlanCache.expires_at <= datetime.utcnow())
                .delete(synchronize_session=False)
            )
            self.db.commit()
            logger.info("Expired plan cache cleaned", deleted=deleted)
            return deleted
        except SQLAlchemyError as e:
            logger.error("Error cleaning plan cache", error=str(e))
            self._rollback()
            return 0

    def clean_old_api_logs(self, days: int = 30) -> int:
        """Delete API log rows older than ``days``"""
        cutoff = datetime.utcnow() - timedelta(days=days)
        try:
            deleted = (
                self.db.query(ApiLog)
                .filter(ApiLog.created_at < cutoff)
                .delete(synchronize_session=False)
            )
            self.db.commit()
            logger.info("Old API logs cleaned", deleted=deleted, days=days)
            return deleted
        except SQLAlchemyError as e:
            logger.error("Error cleaning API logs", error=str(e))
            self._rollback()
            return 0

    def get_cache_stats(self) -> Dict[str, int]:
        now = datetime.utcnow()
        try:
            return {
                "totalCacheEntries": self.db.query(func.count(PlanCache.id)).scalar() or 0,
                "activeCacheEntries": (
                    self.db.query(func.count(PlanCache.id)).filter(PlanCache.expires_at > now).scalar() or 0
                ),
                "apiCallsLast24h": (
                    self.db.query(func.count(ApiLog.id))
                    .filter(ApiLog.created_at > now - timedelta(hours=24))
                    .scalar() or 0
                ),
            }
        except SQLAlchemyError as e:
            logger.error("Error reading cache stats", error=str(e))
            self._rollback()
            return {"totalCacheEntries": 0, "activeCacheEntries": 0, "apiCallsLast24h": 0}

    @staticmethod
    def _row_to_plan(row: ElectricityPlan) -> Plan:
        provider = row.provider
        return Plan(
            id=row.external_id,
            name=row.name,
            family=row.family,
            headline=row.headline,
            description=row.description,
            provider=PlanProvider(
                name=provider.name if provider else "",
                logo=provider.logo_url if provider else None,
                rating=provider.rating if provider else 0.0,
                review_count=provider.review_count if provider else 0,
                puct_number=provider.puct_number if provider else None,
            ),
            pricing=PlanPricing(
                rate_500kwh=row.rate_500kwh or 0.0,
                rate_1000kwh=row.rate_1000kwh or 0.0,
                rate_2000kwh=row.rate_2000kwh or 0.0,
                rate_per_kwh=row.rate_1000kwh or 0.0,
                total_500kwh=row.total_500kwh or 0.0,
                total_1000kwh=row.total_1000kwh or 0.0,
                total_2000kwh=row.total_2000kwh or 0.0,
            ),
            contract=PlanContract(
                length=row.term_months,
                type=row.rate_type,
                early_termination_fee=row.early_termination_fee,
                auto_renewal=row.auto_renewal,
                satisfaction_guarantee=row.satisfaction_guarantee,
            ),
            features=PlanFeatures(
                green_energy=row.percent_green,
                bill_credit=row.bill_credit,
                free_time=parse_time_of_use(row.headline) if row.is_time_of_use else None,
                deposit=PlanDeposit(required=row.deposit_required),
                requires_auto_pay=row.requires_auto_pay,
            ),
            tdsp_duns=row.tdsp_duns,
            efl_link=row.efl_link,
            tos_link=row.tos_link,
            yrac_link=row.yrac_link,
            is_time_of_use=row.is_time_of_use,
        )
