import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from sqlalchemy.orm import DeclarativeBase
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./data/database.sqlite")


class Base(DeclarativeBase):
    pass


def build_engine(url: str = DATABASE_URL, echo: bool = False) -> AsyncEngine:
    """
    Cria o engine assíncrono.
    No SQLite toda transação abre com BEGIN IMMEDIATE: a reserva de jogadores
    da fila fica exclusiva entre conexões (o SQLite não tem SELECT ... FOR UPDATE).
    """
    engine = create_async_engine(url, echo=echo, future=True)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_connect(dbapi_connection, connection_record):
            # Desliga o BEGIN automático do driver; quem abre a transação somos nós
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA busy_timeout=10000")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


engine = build_engine()
async_session = build_session_factory(engine)


async def init_db(target_engine: AsyncEngine = None):
    import src.database.models  # noqa: F401 (registra as tabelas no metadata)

    target_engine = target_engine or engine
    async with target_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def session_scope(factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Uma transação por bloco: commit se tudo deu certo, rollback se houve exceção."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

