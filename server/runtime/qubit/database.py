"""
Qubit Message Service - Database Connection

SQLAlchemy setup for the message store. MySQL (PyMySQL) by default; any
dialect that renders FOR UPDATE SKIP LOCKED works for multi-instance use.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from qubit.config import settings


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine, with connection pooling for server databases."""
    if url.startswith("sqlite"):
        return create_engine(url, echo=echo)
    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=20,
        echo=echo,  # Log SQL queries in debug mode
    )


def build_session_factory(bind: Engine) -> sessionmaker:
    # Claimed rows are read after commit for logging, so keep them loaded
    return sessionmaker(autoflush=False, expire_on_commit=False, bind=bind)


# Create engine with connection pooling
engine = build_engine(settings.database_url, echo=settings.DEBUG)

# Session factory
SessionLocal = build_session_factory(engine)

# Base class for models
Base = declarative_base()
