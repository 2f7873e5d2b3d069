# pcinventory/db/session.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
import os

from pcinventory.logger import get_logger

logger = get_logger(__name__)

_engine = None
_SessionLocal = None


def get_engine():
    global _engine
    if _engine is None:
        db_url = os.environ.get("DATABASE_URL")
        logger.info("Using database URL: %s", db_url)
        if not db_url:
            raise RuntimeError("DATABASE_URL not set")
        _engine = build_engine(db_url)
    return _engine


def build_engine(db_url: str):
    '''
    创建 engine；内存 SQLite 需要 StaticPool 让所有 session 共享同一连接
    '''
    if db_url.startswith("sqlite") and ":memory:" in db_url:
        return create_engine(
            db_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if db_url.startswith("sqlite"):
        return create_engine(db_url, connect_args={"check_same_thread": False})
    return create_engine(db_url)


def make_session_factory(engine):
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


def get_session_factory():
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = make_session_factory(get_engine())
    return _SessionLocal


def get_session():
    return get_session_factory()()


def reset_engine():
    """Forget the cached engine so the next call re-reads DATABASE_URL."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
