"""Database engine and session factory for the SQL-backed ledger."""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from bloodchain.core.config import settings


class Base(DeclarativeBase):
    pass


def get_engine(database_url: str = None) -> Engine:
    url = database_url or settings.DATABASE_URL
    kwargs = {"echo": False}
    if url.startswith("sqlite"):
        # one shared connection for in-memory databases, usable across threads
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


def get_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
    )


def init_db(engine: Engine) -> None:
    """Create tables if they do not exist."""
    from bloodchain import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
