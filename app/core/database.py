import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi import HTTPException
from dotenv import load_dotenv

from app.core.config import get_settings

# Load environment variables from .env
load_dotenv()

logger = logging.getLogger(__name__)

# Create engine and session (both stay None until DB_URL is set)
db_url = get_settings().DB_URL

engine = None
SessionLocal = None
if db_url:
    # SQLite is used by local runs and the maintenance script
    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    engine = create_engine(db_url, connect_args=connect_args, pool_pre_ping=True)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create the accounts, subscription, config and event tables if missing."""
    if engine is None:
        logger.warning("DB_URL not set; skipping table creation")
        return
    from app.models import Base  # noqa: F401 — registers every subscription model
    Base.metadata.create_all(bind=engine, checkfirst=True)


def get_db():
    """Request-scoped session; closed when the request ends."""
    if SessionLocal is None:
        raise HTTPException(
            status_code=503,
            detail="Subscription store is not configured. Set DB_URL."
        )
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
