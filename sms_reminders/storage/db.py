"""
SQLAlchemy 2.0 schema and session factory for the reminder stores.

The appointment and recipient tables are owned by the wider CRM and only read
here; ``sms_reminder_logs`` is owned by the reminder engine and its composite
unique constraint is what makes delivery idempotent.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Engine,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    create_engine,
    make_url,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker


class StoreUnavailableError(RuntimeError):
    """Raised when a store is used without a configured database."""


# ──────────────────────────────────────────────────────────────────────
# 1. Column types
# ──────────────────────────────────────────────────────────────────────
class UTCDateTime(TypeDecorator[datetime]):
    """Timezone-aware datetimes stored as UTC.

    Backends without native TIMESTAMPTZ (SQLite) hand back naive values; those
    are read as UTC so comparisons and arithmetic stay aware.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Refusing to store naive datetime {value.isoformat()}; must be timezone-aware")
        value = value.astimezone(UTC)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


# ──────────────────────────────────────────────────────────────────────
# 2. ORM models
# ──────────────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    pass


class AppointmentRow(Base):
    __tablename__ = "calendar_appointments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    customer_name: Mapped[str] = mapped_column(Text)
    customer_phone: Mapped[str | None] = mapped_column(Text, nullable=True)
    appointment_time: Mapped[datetime] = mapped_column(UTCDateTime, index=True)
    status: Mapped[str] = mapped_column(String(32), default="scheduled")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    model_interests: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)


class ProfileRow(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    phone_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    sms_notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True)


class ReminderLogRow(Base):
    __tablename__ = "sms_reminder_logs"
    __table_args__ = (
        UniqueConstraint(
            "appointment_id",
            "reminder_type",
            "recipient_user_id",
            name="unique_reminder_per_user",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    appointment_id: Mapped[str] = mapped_column(String(64), index=True)
    reminder_type: Mapped[str] = mapped_column(String(16))
    recipient_user_id: Mapped[str] = mapped_column(String(64))
    recipient_phone: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(16))
    transport_message_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    transport_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    scheduled_for: Mapped[datetime] = mapped_column(UTCDateTime)
    sent_at: Mapped[datetime] = mapped_column(UTCDateTime, default=lambda: datetime.now(UTC))


# ──────────────────────────────────────────────────────────────────────
# 3. Engine / session factory
# ──────────────────────────────────────────────────────────────────────
def normalize_url(url: str) -> str:
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _connect_args(url: str, timeout_s: float) -> dict[str, Any]:
    backend = make_url(url).get_backend_name()
    if backend == "sqlite":
        return {"timeout": timeout_s}
    if backend == "postgresql":
        return {
            "connect_timeout": max(1, int(timeout_s)),
            "options": f"-c statement_timeout={int(timeout_s * 1000)}",
        }
    return {}


class Database:
    """Owns the engine and hands out sessions."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_maker = sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str, *, timeout_s: float = 10.0) -> Database:
        normalized = normalize_url(url)
        engine = create_engine(
            normalized,
            pool_pre_ping=True,
            connect_args=_connect_args(normalized, timeout_s),
        )
        return cls(engine)

    def session(self) -> Session:
        return self._session_maker()

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()


def require_database(database: Database | None, store: str) -> Database:
    if database is None:
        raise StoreUnavailableError(f"{store} is not configured (set REMINDERS_DATABASE_URL)")
    return database
