"""Async SQLite signal storage powered by SQLAlchemy."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sqlalchemy import Boolean, DateTime, Float, String, Text, desc, func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.change_feed import SignalChange, SignalChangeFeed
from app.models import (
    DraftSignal,
    PublishedSignal,
    Signal,
    SignalStatus,
    SignalValidationError,
    is_terminal,
    parse_action,
    validate_published_fields,
)


class Base(DeclarativeBase):
    """Base declarative class for ORM models."""


class SignalORM(Base):
    __tablename__ = "signals"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    symbol: Mapped[str] = mapped_column(String, default="XAUUSD", nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    entry_from: Mapped[float | None] = mapped_column(Float, nullable=True)
    entry_to: Mapped[float | None] = mapped_column(Float, nullable=True)
    stop_loss: Mapped[float | None] = mapped_column(Float, nullable=True)
    take_profit_1: Mapped[float | None] = mapped_column(Float, nullable=True)
    take_profit_2: Mapped[float | None] = mapped_column(Float, nullable=True)
    take_profit_3: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String, default=SignalStatus.ACTIVE.value, nullable=False)
    is_draft: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    current_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    pnl: Mapped[float | None] = mapped_column(Float, nullable=True)
    pnl_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


PRICE_FIELDS = (
    "entry_from",
    "entry_to",
    "stop_loss",
    "take_profit_1",
    "take_profit_2",
    "take_profit_3",
)
EDITABLE_FIELDS = frozenset(
    {"symbol", "action", "notes", "status", "current_price", "pnl", "pnl_percentage", *PRICE_FIELDS}
)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _to_record(row: SignalORM) -> Signal:
    common = dict(
        id=row.id,
        user_id=row.user_id,
        symbol=row.symbol,
        action=parse_action(row.action),
        entry_from=row.entry_from,
        entry_to=row.entry_to,
        take_profit_1=row.take_profit_1,
        take_profit_2=row.take_profit_2,
        take_profit_3=row.take_profit_3,
        notes=row.notes,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )
    if row.is_draft:
        return DraftSignal(stop_loss=row.stop_loss, **common)
    return PublishedSignal(
        stop_loss=float(row.stop_loss or 0.0),
        status=SignalStatus(row.status),
        current_price=row.current_price,
        pnl=row.pnl,
        pnl_percentage=row.pnl_percentage,
        **common,
    )


def _row_fields(row: SignalORM) -> dict[str, Any]:
    return {name: getattr(row, name) for name in ("action", *PRICE_FIELDS)}


class SignalStore:
    """Signal records of a single owner, with change notifications."""

    def __init__(
        self,
        db_path: str | Path = "data/signals.db",
        user_id: str = "local",
        change_feed: SignalChangeFeed | None = None,
    ) -> None:
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.user_id = user_id
        self.change_feed = change_feed or SignalChangeFeed()
        self._engine: AsyncEngine = create_async_engine(f"sqlite+aiosqlite:///{path}", echo=False)
        self._session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine, expire_on_commit=False
        )

    async def init_db(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self._engine.dispose()

    async def healthcheck(self) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(select(func.count(SignalORM.id)).limit(1))
            _ = result.scalar_one_or_none()
        return True

    async def create(self, **signal_data: Any) -> Signal:
        unknown = set(signal_data) - EDITABLE_FIELDS - {"is_draft"}
        if unknown:
            raise SignalValidationError(f"unknown signal fields: {', '.join(sorted(unknown))}")

        is_draft = bool(signal_data.pop("is_draft", False))
        signal_data["action"] = parse_action(signal_data.get("action")).value
        if is_draft:
            signal_data["status"] = SignalStatus.DRAFT.value
        else:
            validate_published_fields(signal_data)
            signal_data["status"] = SignalStatus.ACTIVE.value
        for name in ("current_price", "pnl", "pnl_percentage"):
            signal_data.pop(name, None)

        now = datetime.now(UTC)
        row = SignalORM(
            id=str(uuid.uuid4()),
            user_id=self.user_id,
            is_draft=is_draft,
            created_at=now,
            updated_at=now,
            **signal_data,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)

        record = _to_record(row)
        self._notify("insert", record)
        return record

    async def update(self, signal_id: str, **update_data: Any) -> Signal | None:
        unknown = set(update_data) - EDITABLE_FIELDS
        if unknown:
            raise SignalValidationError(f"fields cannot be updated: {', '.join(sorted(unknown))}")

        async with self._session_factory() as session:
            row = await self._owned_row(session, signal_id)
            if row is None:
                return None

            if "action" in update_data:
                update_data["action"] = parse_action(update_data["action"]).value
            if "status" in update_data:
                self._check_transition(row, SignalStatus(update_data["status"]))
            if not row.is_draft:
                if "action" in update_data and update_data["action"] != row.action:
                    raise SignalValidationError("action of a published signal cannot change")
                validate_published_fields({**_row_fields(row), **update_data})

            for field_name, value in update_data.items():
                setattr(row, field_name, value)
            row.updated_at = datetime.now(UTC)
            await session.commit()

        record = _to_record(row)
        self._notify("update", record)
        return record

    async def publish(self, signal_id: str) -> Signal | None:
        """Turn a draft into an active signal."""
        async with self._session_factory() as session:
            row = await self._owned_row(session, signal_id)
            if row is None:
                return None
            if not row.is_draft:
                return _to_record(row)

            validate_published_fields(_row_fields(row))
            row.is_draft = False
            row.status = SignalStatus.ACTIVE.value
            row.updated_at = datetime.now(UTC)
            await session.commit()

        record = _to_record(row)
        self._notify("update", record)
        return record

    async def get_by_id(self, signal_id: str) -> Signal | None:
        async with self._session_factory() as session:
            row = await self._owned_row(session, signal_id)
            if row is None:
                return None
            return _to_record(row)

    async def list(self) -> list[Signal]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SignalORM)
                .where(SignalORM.user_id == self.user_id)
                .order_by(desc(SignalORM.created_at))
            )
            rows = result.scalars().all()
        return [_to_record(row) for row in rows]

    async def delete(self, signal_id: str) -> bool:
        async with self._session_factory() as session:
            row = await self._owned_row(session, signal_id)
            if row is None:
                return False
            await session.delete(row)
            await session.commit()

        self.change_feed.publish(SignalChange(kind="delete", user_id=self.user_id, signal_id=signal_id))
        return True

    async def _owned_row(self, session: AsyncSession, signal_id: str) -> SignalORM | None:
        row = await session.get(SignalORM, signal_id)
        if row is None or row.user_id != self.user_id:
            return None
        return row

    def _check_transition(self, row: SignalORM, new_status: SignalStatus) -> None:
        current = SignalStatus(row.status)
        if row.is_draft:
            if new_status != SignalStatus.DRAFT:
                raise SignalValidationError("publish a draft before changing its status")
            return
        if new_status == SignalStatus.DRAFT:
            raise SignalValidationError("published signal cannot return to draft")
        if is_terminal(current) and new_status != current:
            raise SignalValidationError(f"signal already closed with status {current.value}")

    def _notify(self, kind: str, record: Signal) -> None:
        self.change_feed.publish(SignalChange(kind=kind, user_id=self.user_id, signal_id=record.id, signal=record))
