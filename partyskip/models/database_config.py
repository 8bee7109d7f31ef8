"""
Database configuration and session management for PartySkip.
"""

import logging
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///partyskip.db"

engine = None
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)
Base = declarative_base()


def normalize_database_url(database_url):
    """Rewrite Heroku-style postgres:// URLs for SQLAlchemy"""
    if database_url and database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url or DEFAULT_DATABASE_URL


def init_engine(database_url=None):
    """Create the engine and bind the session factory to it"""
    global engine
    url = normalize_database_url(database_url)

    options = {"echo": False}
    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every session sees an empty database
            options["poolclass"] = StaticPool
    else:
        options["pool_pre_ping"] = True
        options["pool_recycle"] = 300

    engine = create_engine(url, **options)
    SessionLocal.configure(bind=engine)
    return engine


def init_db(database_url=None):
    """Initialize database tables"""
    bound = init_engine(database_url)
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=bound)
    return bound


@contextmanager
def get_db():
    """Context manager for database sessions with automatic commit/rollback"""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
