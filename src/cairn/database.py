"""
Database configuration and session management.

- Defaults to SQLite for local dev
- Supports Postgres via DATABASE_URL
- TENANCY_MODE=db-per-tenant keeps one database per tenant
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from threading import RLock
from typing import Generator, Optional

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cairn.config import get_settings
from cairn.context import tenant_id_var
from cairn.models.base import Base

REQUIRED_TABLES = (
    "auth_tenants",
    "auth_users",
    "auth_credentials",
    "user_groups",
    "user_group_members",
    "access_rules",
)


def _sanitize_tenant_id(raw: str) -> str:
    allowed = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_")
    cleaned = "".join(ch if ch in allowed else "_" for ch in raw.strip())
    return cleaned or "default"


def resolve_database_url(*, tenant_id: Optional[str] = None) -> str:
    """
    Resolve database URL for the current tenancy mode.

    - TENANCY_MODE=single: always returns DATABASE_URL
    - TENANCY_MODE=db-per-tenant: DATABASE_URL_TEMPLATE (if set) or a derived sqlite file
    """
    settings = get_settings()
    if settings.TENANCY_MODE != "db-per-tenant":
        return settings.DATABASE_URL

    effective_tenant = _sanitize_tenant_id(tenant_id or "default")
    if settings.DATABASE_URL_TEMPLATE:
        return settings.DATABASE_URL_TEMPLATE.format(tenant_id=effective_tenant)

    url = settings.DATABASE_URL
    if url.startswith("sqlite:///") and url.endswith(".db"):
        base = url[len("sqlite:///") : -len(".db")]
        return f"sqlite:///{base}__{effective_tenant}.db"

    # Without an explicit template other databases cannot be derived safely.
    return url


def create_db_engine(database_url: Optional[str] = None, *, echo: bool = False) -> Engine:
    url = database_url or get_settings().DATABASE_URL

    connect_args: dict = {}
    if "sqlite" in url:
        connect_args["check_same_thread"] = False

    if url.startswith("sqlite:///:memory:") or url == "sqlite://":
        engine = create_engine(
            url,
            echo=echo,
            connect_args=connect_args,
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            url,
            echo=echo,
            pool_pre_ping=True,
            pool_recycle=3600,
            connect_args=connect_args,
        )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record):  # pragma: no cover
        if "sqlite" in url:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


if os.getenv("ALEMBIC_RUNNING") != "true":
    engine: Optional[Engine] = create_db_engine()
    SessionLocal: Optional[sessionmaker] = sessionmaker(
        autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
    )
else:  # pragma: no cover
    engine = None
    SessionLocal = None


_tenant_engines: dict[str, Engine] = {}
_tenant_sessions: dict[str, sessionmaker] = {}
_tenant_init_done: set[str] = set()
_tenant_lock = RLock()


def get_engine_for_tenant(tenant_id: Optional[str]) -> Engine:
    url = resolve_database_url(tenant_id=tenant_id)
    with _tenant_lock:
        existing = _tenant_engines.get(url)
        if existing is not None:
            return existing

        eng = create_db_engine(url)
        _tenant_engines[url] = eng
        _tenant_sessions[url] = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=eng
        )
        return eng


def get_sessionmaker_for_tenant(tenant_id: Optional[str]) -> sessionmaker:
    url = resolve_database_url(tenant_id=tenant_id)
    with _tenant_lock:
        if url not in _tenant_sessions:
            get_engine_for_tenant(tenant_id)
        settings = get_settings()
        if (
            settings.ENVIRONMENT == "dev"
            and settings.SCHEMA_MODE == "create_all"
            and url not in _tenant_init_done
        ):
            init_db(create_tables=True, bind_engine=_tenant_engines[url])
            _tenant_init_done.add(url)
        return _tenant_sessions[url]


def _new_session() -> Session:
    settings = get_settings()
    if settings.TENANCY_MODE == "db-per-tenant":
        return get_sessionmaker_for_tenant(tenant_id_var.get())()
    if SessionLocal is None:
        raise RuntimeError("Database engine is not initialized")
    return SessionLocal()


def get_db() -> Generator[Session, None, None]:
    db = _new_session()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    session = _new_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def import_all_models() -> None:
    from cairn.security.acl import models as _acl_models  # noqa: F401
    from cairn.security.auth import models as _auth_models  # noqa: F401


def init_db(*, create_tables: bool = False, bind_engine: Optional[Engine] = None) -> None:
    """
    Initialize database schema.

    When SCHEMA_MODE=migrations, this will NOT auto-create tables.
    Use `cairn db upgrade` for production deployments.
    """
    settings = get_settings()
    target_engine = bind_engine or engine
    if not target_engine:
        raise RuntimeError("Database engine is not initialized")
    if not create_tables:
        return

    import_all_models()

    if settings.SCHEMA_MODE == "migrations":
        existing_tables = set(inspect(target_engine).get_table_names())
        missing = sorted(set(REQUIRED_TABLES) - existing_tables)
        if missing:
            raise RuntimeError(
                "SCHEMA_MODE=migrations: schema is missing tables: "
                + ", ".join(missing)
                + ". Run `cairn db upgrade` first to create tables via Alembic."
            )
        return

    Base.metadata.create_all(bind=target_engine, checkfirst=True)
