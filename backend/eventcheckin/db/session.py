from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from eventcheckin.core.config import settings


def build_engine(database_url: str = None):
    """Create an engine; SQLite gets thread sharing and a lock timeout"""
    url = database_url or settings.DATABASE_URL
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {
            "check_same_thread": False,
            "timeout": settings.SQLITE_LOCK_TIMEOUT,
        }
    return create_engine(
        url,
        echo=settings.DB_ECHO,
        pool_pre_ping=not url.startswith("sqlite"),
        connect_args=connect_args,
    )


engine = build_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency for getting database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
