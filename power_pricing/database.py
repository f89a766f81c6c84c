"""Database configuration and session management"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from power_pricing.config import settings

engine_kwargs = {"pool_pre_ping": True, "echo": settings.debug}
if settings.database_url.startswith("sqlite"):
    # One shared connection so in-memory databases survive across sessions
    engine_kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
else:
    engine_kwargs.update(pool_size=10, max_overflow=20)

# Database engine
engine = create_engine(settings.database_url, **engine_kwargs)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def get_db():
    """Dependency to get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
