"""Database session and engine management."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from market_notify.config import settings


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_recycle": 3600,  # Recycle connections after 1 hour
    }


engine = create_engine(str(settings.DATABASE_URL), **_engine_kwargs(str(settings.DATABASE_URL)))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Keep objects usable after commit
)
