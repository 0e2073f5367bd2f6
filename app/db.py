# app/db.py
from typing import Any, Dict, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from .config import get_settings

# ---------- resolve DATABASE_URL ----------
settings = get_settings()
DATABASE_URL = settings.database_url


def make_engine(url: str) -> Engine:
    kwargs: Dict[str, Any] = {
        "pool_pre_ping": True,   # recycle dead connections automatically
        "future": True,
    }
    if url.startswith("sqlite"):
        # Needed for SQLite when used inside FastAPI (multi-threaded)
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every thread sees its own empty db
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_size"] = settings.pool_size
        kwargs["max_overflow"] = 0
        kwargs["pool_timeout"] = settings.pool_timeout
    return create_engine(url, **kwargs)


# ---------- engine/session/base ----------
engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    future=True,
)

Base = declarative_base()


# ---------- FastAPI dependency ----------
def get_db() -> Iterator[Session]:
    """
    Usage in routes:
        from app.db import get_db
        def endpoint(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# (Optional) quick self-test when running this file directly
if __name__ == "__main__":
    print("DATABASE_URL ->", DATABASE_URL)
    # Lazy import of models so Base.metadata includes them
    from app import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    print("Tables created (if not existed).")
