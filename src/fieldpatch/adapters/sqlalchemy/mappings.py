"""SQLAlchemy table metadata for patch binding state."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import JSON, Column, DateTime, Dialect, MetaData, String, Table, TypeDecorator

metadata = MetaData()


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        # SQLite drops the offset on the way back.
        return value if value.tzinfo else value.replace(tzinfo=UTC)


patch_binding_state_table = Table(
    "patch_binding_state",
    metadata,
    Column("binding_id", String, primary_key=True),
    Column("manager", String, nullable=False),
    Column("api_version", String, nullable=False),
    Column("kind", String, nullable=False),
    Column("name", String, nullable=False),
    Column("namespace", String, nullable=True),
    Column("patch_kind", String(32), nullable=False),
    Column("content_digest", String(64), nullable=False),
    Column("projection_status", String(32), nullable=False),
    Column("projection", JSON, nullable=False),
    Column("ownership", JSON, nullable=False),
    Column("previous_owners", JSON, nullable=False),
    Column("updated_at", UTCDateTime, nullable=True),
)

