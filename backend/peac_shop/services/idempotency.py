"""
Idempotency for the proof-submitted checkout step.

Retries carrying the same Idempotency-Key return the byte-identical order
body and receipt produced by the first completion, without calling the
payment verifier again.

The store is an interface with check-and-set semantics: create() inserts a
pending reservation only if the key is absent, so two concurrent retries can
never both run verification and order creation.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy import exc as sa_exc

from ..db.init_db import create_engine, create_session_factory, initialize_database
from ..db.models import IdempotencyRecordModel
from ..exceptions import IntegrityError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    # naive UTC, matching what SQLite DateTime columns round-trip
    return datetime.now(timezone.utc).replace(tzinfo=None)


class IdempotencyKeyConflict(IntegrityError):
    """Key reused for a different session or basket."""

    status_code = 409

    def __init__(self, key: str):
        super().__init__(
            "idempotency_key_conflict",
            "Idempotency-Key was already used for a different checkout",
            {"idempotency_key": key},
        )


class IdempotencyOperationInProgress(IntegrityError):
    """Another request holding the key did not finish in time."""

    status_code = 409

    def __init__(self, key: str):
        super().__init__(
            "idempotency_in_progress",
            "A checkout with this Idempotency-Key is still in progress, retry later",
            {"idempotency_key": key},
        )


@dataclass(frozen=True)
class IdempotencyRecord:
    idempotency_key: str
    request_hash: str
    status: str  # "pending" or "completed"
    created_at: datetime
    expires_at: datetime
    response_body: Optional[str] = None
    receipt: Optional[str] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or _utcnow())


# ============================================================================
# Stores
# ============================================================================

class IdempotencyStore(ABC):
    """Key-value store with atomic insert-if-absent."""

    @abstractmethod
    async def get(self, idempotency_key: str) -> Optional[IdempotencyRecord]:
        """Get a live (unexpired) record by key."""
        pass

    @abstractmethod
    async def create(self, record: IdempotencyRecord) -> bool:
        """
        Insert record if no live record holds the key.

        Returns True if created, False if key already exists.
        """
        pass

    @abstractmethod
    async def complete(self, idempotency_key: str, response_body: str, receipt: str) -> None:
        """Attach the final response to a pending record."""
        pass

    @abstractmethod
    async def release(self, idempotency_key: str) -> None:
        """Drop a pending reservation so the checkout can be retried."""
        pass

    async def close(self) -> None:
        pass


class InMemoryIdempotencyStore(IdempotencyStore):
    """
    Process-local store.

    Check and insert run without an await in between, so they are atomic on
    the event loop. Not shared between service instances.
    """

    def __init__(self):
        self._records: Dict[str, IdempotencyRecord] = {}

    async def get(self, idempotency_key: str) -> Optional[IdempotencyRecord]:
        record = self._records.get(idempotency_key)
        if record and record.is_expired():
            del self._records[idempotency_key]
            return None
        return record

    async def create(self, record: IdempotencyRecord) -> bool:
        existing = self._records.get(record.idempotency_key)
        if existing is not None and not existing.is_expired():
            return False
        self._records[record.idempotency_key] = record
        return True

    async def complete(self, idempotency_key: str, response_body: str, receipt: str) -> None:
        record = self._records[idempotency_key]
        self._records[idempotency_key] = replace(
            record, status="completed", response_body=response_body, receipt=receipt
        )

    async def release(self, idempotency_key: str) -> None:
        record = self._records.get(idempotency_key)
        if record is not None and record.status == "pending":
            del self._records[idempotency_key]


class SqlIdempotencyStore(IdempotencyStore):
    """
    Shared store on the idempotency_records table.

    The primary key makes create() a check-and-set across every instance
    pointing at the same database.
    """

    def __init__(self, engine, session_factory):
        self.engine = engine
        self.session_factory = session_factory
        self._schema_ready = False
        self._schema_lock = asyncio.Lock()

    async def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        async with self._schema_lock:
            if not self._schema_ready:
                await initialize_database(self.engine)
                self._schema_ready = True

    @staticmethod
    def _to_record(row: IdempotencyRecordModel) -> IdempotencyRecord:
        return IdempotencyRecord(
            idempotency_key=row.idempotency_key,
            request_hash=row.request_hash,
            status=row.status,
            created_at=row.created_at,
            expires_at=row.expires_at,
            response_body=row.response_body,
            receipt=row.receipt,
        )

    async def get(self, idempotency_key: str) -> Optional[IdempotencyRecord]:
        await self._ensure_schema()
        async with self.session_factory() as session:
            result = await session.execute(
                select(IdempotencyRecordModel).where(
                    IdempotencyRecordModel.idempotency_key == idempotency_key
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            record = self._to_record(row)
        return None if record.is_expired() else record

    async def create(self, record: IdempotencyRecord) -> bool:
        await self._ensure_schema()
        async with self.session_factory() as session:
            await session.execute(
                delete(IdempotencyRecordModel).where(
                    IdempotencyRecordModel.idempotency_key == record.idempotency_key,
                    IdempotencyRecordModel.expires_at <= _utcnow(),
                )
            )
            session.add(IdempotencyRecordModel(
                idempotency_key=record.idempotency_key,
                request_hash=record.request_hash,
                status=record.status,
                response_body=record.response_body,
                receipt=record.receipt,
                created_at=record.created_at,
                expires_at=record.expires_at,
            ))
            try:
                await session.commit()
            except sa_exc.IntegrityError:
                await session.rollback()
                return False
        return True

    async def complete(self, idempotency_key: str, response_body: str, receipt: str) -> None:
        await self._ensure_schema()
        async with self.session_factory() as session:
            await session.execute(
                update(IdempotencyRecordModel)
                .where(IdempotencyRecordModel.idempotency_key == idempotency_key)
                .values(status="completed", response_body=response_body, receipt=receipt)
            )
            await session.commit()

    async def release(self, idempotency_key: str) -> None:
        await self._ensure_schema()
        async with self.session_factory() as session:
            await session.execute(
                delete(IdempotencyRecordModel).where(
                    IdempotencyRecordModel.idempotency_key == idempotency_key,
                    IdempotencyRecordModel.status == "pending",
                )
            )
            await session.commit()

    async def close(self) -> None:
        await self.engine.dispose()


# ============================================================================
# Manager
# ============================================================================

@dataclass(frozen=True)
class IdempotentResult:
    response_body: str
    receipt: str
    replayed: bool


class IdempotencyManager:
    """
    Runs the completion step at most once per idempotency key.

    Usage:
        result = await manager.run(
            idempotency_key="key-123",
            request_hash=sha256_hex(session_id + fingerprint),
            execute_fn=complete_checkout,
        )
    """

    def __init__(
        self,
        store: IdempotencyStore,
        ttl_seconds: int = 86400,
        lock_timeout_seconds: float = 30.0,
        poll_interval_seconds: float = 0.05
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.lock_timeout_seconds = lock_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds

    async def run(
        self,
        idempotency_key: str,
        request_hash: str,
        execute_fn: Callable[[], Awaitable[Tuple[str, str]]]
    ) -> IdempotentResult:
        """
        Reserve the key and execute, or return the stored result.

        Args:
            idempotency_key: Caller-supplied key
            request_hash: Identity of the checkout the key is bound to
            execute_fn: Coroutine returning (response_body, receipt)

        Raises:
            IdempotencyKeyConflict: Key bound to a different request_hash
            IdempotencyOperationInProgress: Holder did not finish before the lock timeout
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.lock_timeout_seconds

        while True:
            now = _utcnow()
            reservation = IdempotencyRecord(
                idempotency_key=idempotency_key,
                request_hash=request_hash,
                status="pending",
                created_at=now,
                expires_at=now + timedelta(seconds=self.ttl_seconds),
            )
            if await self.store.create(reservation):
                try:
                    response_body, receipt = await execute_fn()
                except BaseException:
                    await self.store.release(idempotency_key)
                    raise
                await self.store.complete(idempotency_key, response_body, receipt)
                logger.info(f"Idempotency key stored: {idempotency_key[:12]}...")
                return IdempotentResult(response_body, receipt, replayed=False)

            existing = await self.store.get(idempotency_key)
            if existing is None:
                # released or expired between create() and get()
                continue
            if existing.request_hash != request_hash:
                raise IdempotencyKeyConflict(idempotency_key)
            if existing.status == "completed":
                logger.info(f"Idempotent replay for key {idempotency_key[:12]}...")
                return IdempotentResult(existing.response_body, existing.receipt, replayed=True)
            if loop.time() >= deadline:
                raise IdempotencyOperationInProgress(idempotency_key)
            await asyncio.sleep(self.poll_interval_seconds)


def build_idempotency_store(settings) -> IdempotencyStore:
    if settings.idempotency_backend == "sql":
        engine = create_engine(settings.database_url)
        return SqlIdempotencyStore(engine, create_session_factory(engine))
    return InMemoryIdempotencyStore()
