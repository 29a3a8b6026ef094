"""Database connection, schema and liveness management."""
import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from pathlib import Path

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from imagegate.config import Settings
from imagegate.errors import ErrorKind, ServiceError
from imagegate.utils.retry import RetryPolicy, retry_async

log = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class Database:
    """Owner of the single shared engine.

    ``connect`` is idempotent and safe to call from concurrent tasks. A
    failed attempt disposes the engine and nulls it out before the next try,
    so a half-open engine is never handed to callers.
    """

    def __init__(
        self,
        url: str,
        *,
        retry_policy: RetryPolicy | None = None,
        heartbeat_interval: float = 30.0,
        connect_timeout: float = 10.0,
        auto_migrate: bool = False,
        echo: bool = False,
    ):
        self.url = url
        self.retry_policy = retry_policy or RetryPolicy()
        self.heartbeat_interval = heartbeat_interval
        self.connect_timeout = connect_timeout
        self.auto_migrate = auto_migrate
        self.echo = echo

        self.engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None
        self._schema_ready = False
        self._lock = asyncio.Lock()
        self._heartbeat_task: asyncio.Task | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url,
            retry_policy=RetryPolicy(
                max_attempts=settings.db_connect_retries,
                delay=settings.db_retry_delay_seconds,
            ),
            heartbeat_interval=settings.db_heartbeat_interval_seconds,
            connect_timeout=settings.db_connect_timeout_seconds,
            auto_migrate=settings.auto_migrate,
            echo=settings.debug,
        )

    @property
    def is_connected(self) -> bool:
        return self.engine is not None

    def _create_engine(self) -> AsyncEngine:
        kwargs: dict = {"echo": self.echo, "pool_pre_ping": True}
        if self.url.startswith("postgresql+asyncpg"):
            kwargs.update(
                pool_size=5,
                max_overflow=10,
                connect_args={"timeout": self.connect_timeout},
            )
        return create_async_engine(self.url, **kwargs)

    async def connect(self) -> AsyncEngine:
        """Establish (or reuse) the connection and make sure the schema exists."""
        if self.engine is not None and self._schema_ready:
            return self.engine

        async with self._lock:
            if self.engine is not None and self._schema_ready:
                return self.engine
            try:
                await retry_async(
                    self._open,
                    self.retry_policy,
                    on_retry=lambda attempt, exc: self._reset(),
                    name="database connect",
                )
            except Exception as exc:
                await self._reset()
                raise ServiceError(
                    ErrorKind.CONNECTIVITY,
                    "Database unavailable",
                ) from exc
            return self.engine

    async def _open(self) -> None:
        if self.engine is None:
            self.engine = self._create_engine()
            self._sessionmaker = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
        await self.ping()
        if not self._schema_ready:
            await self._ensure_schema()
            self._schema_ready = True
        log.info("Connected to database")

    async def _reset(self) -> None:
        engine, self.engine = self.engine, None
        self._sessionmaker = None
        self._schema_ready = False
        if engine is not None:
            with suppress(Exception):
                await engine.dispose()

    async def ping(self) -> None:
        """Run a trivial query against the live engine."""
        if self.engine is None:
            raise ServiceError(ErrorKind.CONNECTIVITY, "Database not connected")
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def _ensure_schema(self) -> None:
        """Create tables and indexes.

        Both paths are idempotent: Alembic stops at head and ``create_all``
        checks for existing tables and indexes first.
        """
        if self.auto_migrate:
            await asyncio.to_thread(self._run_alembic_upgrade)
            return

        import imagegate.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    def _run_alembic_upgrade(self) -> None:
        from alembic import command
        from alembic.config import Config

        project_root = Path(__file__).resolve().parent.parent  # backend/
        cfg = Config(str(project_root / "alembic.ini"))
        cfg.set_main_option("script_location", str(project_root / "alembic"))
        cfg.attributes["database_url"] = self.url
        cfg.attributes["configure_logger"] = False
        command.upgrade(cfg, "head")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Open a unit of work, connecting first if needed.

        Callers commit explicitly; anything left uncommitted is rolled back.
        """
        if self._sessionmaker is None or not self._schema_ready:
            await self.connect()
        async with self._sessionmaker() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def count_documents(self) -> dict[str, int]:
        """Row counts of the two collections, for diagnostics."""
        from imagegate.models import Transaction, User

        async with self.session() as session:
            users = await session.scalar(select(func.count()).select_from(User))
            transactions = await session.scalar(select(func.count()).select_from(Transaction))
        return {"users": int(users or 0), "transactions": int(transactions or 0)}

    # Heartbeat

    def start_heartbeat(self) -> None:
        """Start the periodic liveness check."""
        if self._heartbeat_task is not None and not self._heartbeat_task.done():
            return
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        log.info("[db-heartbeat] started (every %.0fs)", self.heartbeat_interval)

    async def stop_heartbeat(self) -> None:
        """Cancel the heartbeat and wait for it to finish."""
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        log.info("[db-heartbeat] stopped")

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            await self.heartbeat()

    async def heartbeat(self) -> bool:
        """Ping once; on failure drop the engine and try to reconnect.

        Never raises, so a dead store cannot take the process down.
        """
        try:
            if self.engine is None:
                raise ServiceError(ErrorKind.CONNECTIVITY, "Database not connected")
            await self.ping()
            return True
        except Exception as exc:
            log.warning("[db-heartbeat] ping failed: %s; reconnecting", exc)

        async with self._lock:
            await self._reset()
        try:
            await self.connect()
        except ServiceError as exc:
            log.error("[db-heartbeat] reconnect failed: %s", exc.message)
            return False
        return True

    async def close(self) -> None:
        """Stop the heartbeat and release the engine."""
        await self.stop_heartbeat()
        async with self._lock:
            await self._reset()
        log.info("Database connection closed")
