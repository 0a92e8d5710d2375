from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from app.core.config import get_settings

_engine: Engine | None = None
_session_local: sessionmaker | None = None


def build_engine(dsn: str, *, app_env: str = "local") -> Engine:
    is_sqlite = dsn.startswith("sqlite")
    connect_args = {"check_same_thread": False, "timeout": 30} if is_sqlite else {}
    engine_kwargs: dict = {"pool_pre_ping": True, "connect_args": connect_args}
    if is_sqlite and app_env.lower() == "test":
        # Store calls hop between worker threads; pooled SQLite handles would be shared across them.
        engine_kwargs["poolclass"] = NullPool
    return create_engine(dsn, **engine_kwargs)


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.postgres_dsn, app_env=settings.app_env)
    return _engine


def get_session_local() -> sessionmaker:
    global _session_local
    if _session_local is None:
        _session_local = sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False, class_=Session)
    return _session_local


def reset_engine_state() -> None:
    """Dispose and clear the lazily built engine and session factory."""
    global _engine, _session_local
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_local = None


def bind_session_factory_for_tests(factory: sessionmaker) -> None:
    global _engine, _session_local
    reset_engine_state()
    _session_local = factory
    _engine = factory.kw.get("bind")
