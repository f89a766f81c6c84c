"""Command-line interface for Texas Power Pricing API management"""

import asyncio
import json
from typing import Optional

import click
import structlog

from power_pricing.config import settings
from power_pricing.database import Base, SessionLocal, engine
from power_pricing.dependencies import ServiceContainer
from power_pricing.log_config import configure_logging
from power_pricing.schemas.plans import PlanSearchParams
from power_pricing.services.plan_data import PlanDataService
from power_pricing.services.plan_repository import PlanRepository

# Import models so their tables are registered on Base.metadata
import power_pricing.models  # noqa: F401

logger = structlog.get_logger()


@click.group()
def cli():
    """Texas Power Pricing API Management CLI"""
    configure_logging(settings.log_level, settings.log_format)


@cli.command("validate-zip")
@click.argument("zip_code")
def validate_zip(zip_code: str):
    """Resolve a ZIP code and print the result as JSON"""

    async def run():
        services = ServiceContainer.from_settings(settings)
        try:
            result = await services.zip_resolver.resolve_zip(zip_code)
        finally:
            await services.pricing_client.aclose()
        click.echo(json.dumps(result.to_dict(), indent=2))

    asyncio.run(run())


@cli.command("fetch-plans")
@click.option("--tdsp-duns", required=True, help="TDSP DUNS number")
@click.option("--usage", default=1000, type=int, help="Monthly usage in kWh")
@click.option("--term", type=int, help="Contract length in months")
@click.option("--green", "percent_green", type=int, help="Minimum renewable percentage")
@click.option("--prepaid/--no-prepaid", "is_pre_pay", default=None, help="Prepaid plans only")
@click.option("--city", "city_slug", help="City slug for file-backed fallback")
def fetch_plans(tdsp_duns: str, usage: int, term: Optional[int], percent_green: Optional[int],
                is_pre_pay: Optional[bool], city_slug: Optional[str]):
    """Fetch plans through the SQL cache and pricing API"""

    async def run():
        Base.metadata.create_all(bind=engine)
        services = ServiceContainer.from_settings(settings)
        db = SessionLocal()
        try:
            params = PlanSearchParams(
                tdsp_duns=tdsp_duns,
                usage=usage,
                term=term,
                percent_green=percent_green,
                is_pre_pay=is_pre_pay,
            )
            plan_data = PlanDataService(
                pricing_client=services.pricing_client,
                repository=PlanRepository(db),
                zip_map=services.zip_map,
                generated_dir=settings.generated_plans_dir,
                cache_ttl_hours=settings.plan_cache_ttl_hours,
            )
            lookup = await plan_data.get_plans(params, city_slug=city_slug)
        finally:
            db.close()
            await services.pricing_client.aclose()

        click.echo(f"✅ {len(lookup.plans)} plans (source: {lookup.source})")
        for plan in lookup.plans:
            click.echo(
                f"   {plan.provider.name:<30} {plan.name:<35} "
                f"{plan.pricing.rate_1000kwh:>6.2f}¢  {plan.contract.length:>2} mo  {plan.contract.type}"
            )

    asyncio.run(run())


@cli.command("cache-stats")
def cache_stats():
    """Show SQL plan cache statistics"""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        stats = PlanRepository(db).get_cache_stats()
    finally:
        db.close()

    click.echo("📊 Plan cache")
    for name, value in stats.items():
        click.echo(f"   {name}: {value}")


@cli.command("clean-cache")
@click.option("--log-days", default=settings.api_log_retention_days, type=int, help="Keep API logs this many days")
def clean_cache(log_days: int):
    """Delete expired plan cache rows and old API logs"""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        repository = PlanRepository(db)
        expired = repository.clean_expired_cache()
        logs = repository.clean_old_api_logs(days=log_days)
    finally:
        db.close()

    logger.info("Cache cleanup complete", expired_cache=expired, api_logs=logs)
    click.echo(f"🧹 Removed {expired} expired cache rows and {logs} API log rows")


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
def serve(host: str, port: int):
    """Run the API server"""
    import uvicorn
    uvicorn.run(
        "power_pricing.main:app",
        host=host,
        port=port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    cli()
