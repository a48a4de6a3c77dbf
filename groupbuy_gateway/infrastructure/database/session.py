"""Database engine and session management"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from groupbuy_gateway.config import settings
from groupbuy_gateway.infrastructure.database.models import Base


def make_engine(database_url: str, **kwargs) -> Engine:
    """Pooled engine; pool sizing comes from settings unless overridden"""
    options = {
        "pool_pre_ping": True,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_recycle": settings.db_pool_recycle_seconds,
    }
    options.update(kwargs)
    return create_engine(database_url, **options)


def make_session_factory(bind: Engine) -> sessionmaker:
    # Flushes are explicit; repositories flush when they need generated ids
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


def init_db(bind: Engine) -> None:
    """Create any missing tables"""
    Base.metadata.create_all(bind=bind)


engine = make_engine(settings.database_url)

SessionLocal = make_session_factory(engine)


def get_db() -> Session:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
