"""
Инициализация базы данных и сессий SQLAlchemy.

Назначение:
- Создание engine (лениво, при первом обращении)
- Контекстный менеджер для сессий
- Фабрика session_scope для сервисов (тесты подменяют её на SQLite во временном каталоге)
- with_clock: часы сервиса попадают в Session.info (правило просрочки задач)
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from functools import lru_cache

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from meeting_minutes_agent.common.config import get_settings
from meeting_minutes_agent.common.time import Clock

SessionScope = Callable[[], AbstractContextManager[Session]]

CLOCK_INFO_KEY = "clock"


# =============================================================================
# ENGINE / SESSION FACTORY
# =============================================================================
def build_engine(dsn: str) -> Engine:
    """
    Engine по DSN. Для SQLite (dev/тесты) разрешаем доступ из worker-потоков:
    все обращения к БД из async-кода идут через asyncio.to_thread.
    """
    if dsn.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in dsn or dsn.rstrip("/") in {"sqlite:", "sqlite+pysqlite:"}:
            kwargs["poolclass"] = StaticPool
        return create_engine(dsn, **kwargs)
    return create_engine(dsn, pool_pre_ping=True)


def build_session_scope(engine: Engine) -> SessionScope:
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)

    @contextmanager
    def _scope() -> Iterator[Session]:
        session: Session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _scope


def with_clock(scope: SessionScope, clock: Clock) -> SessionScope:
    """
    Оборачивает session_scope: каждая сессия несёт часы в session.info.
    """

    @contextmanager
    def _scope() -> Iterator[Session]:
        with scope() as session:
            session.info[CLOCK_INFO_KEY] = clock
            yield session

    return _scope


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return build_engine(get_settings().database_dsn)


@lru_cache(maxsize=1)
def _default_scope() -> SessionScope:
    return build_session_scope(get_engine())


# =============================================================================
# CONTEXT MANAGER
# =============================================================================
@contextmanager
def db_session() -> Iterator[Session]:
    """
    Контекстный менеджер для работы с БД.

    Использование:
        with db_session() as session:
            session.add(...)
    """
    with _default_scope()() as session:
        yield session


def init_db(engine: Engine | None = None) -> None:
    """
    Создание таблиц без миграций (dev / DB_AUTO_CREATE=true).
    """
    from meeting_minutes_agent.storage.models import Base

    Base.metadata.create_all(engine or get_engine())
