"""Tests for shared service helpers."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

import pytest
from fastapi import HTTPException
from sqlalchemy import Integer, String, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.services.common import apply_ordering, as_utc, coerce_uuid
from storefront.services.response import list_response

# ── Test DB setup ────────────────────────────────────────


class _Base(DeclarativeBase):
    pass


class _Item(_Base):
    __tablename__ = "items"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(80))


_engine = create_engine(
    "sqlite+pysqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_Base.metadata.create_all(_engine)
_SessionLocal = sessionmaker(bind=_engine, autoflush=False, autocommit=False)


@pytest.fixture
def db() -> Session:
    session = _SessionLocal()
    for i in range(20):
        session.add(_Item(name=f"Item {i:03d}"))
    session.commit()
    yield session
    session.close()
    with _SessionLocal() as s:
        s.query(_Item).delete()
        s.commit()


class TestCoerceUuid:
    def test_none_returns_none(self) -> None:
        assert coerce_uuid(None) is None

    def test_empty_string_returns_none(self) -> None:
        assert coerce_uuid("") is None

    def test_uuid_passthrough(self) -> None:
        u = uuid.uuid4()
        assert coerce_uuid(u) is u

    def test_string_to_uuid(self) -> None:
        s = "12345678-1234-5678-1234-567812345678"
        result = coerce_uuid(s)
        assert isinstance(result, uuid.UUID)
        assert str(result) == s

    def test_invalid_string_returns_none(self) -> None:
        assert coerce_uuid("not-a-uuid") is None


class TestAsUtc:
    def test_naive_is_treated_as_utc(self) -> None:
        value = as_utc(datetime(2024, 1, 1, 12, 0))
        assert value is not None
        assert value.tzinfo is UTC

    def test_aware_passthrough(self) -> None:
        value = datetime(2024, 1, 1, tzinfo=UTC)
        assert as_utc(value) is value

    def test_none(self) -> None:
        assert as_utc(None) is None


class TestApplyOrdering:
    def test_valid_asc(self, db: Session) -> None:
        allowed = {"name": _Item.name, "id": _Item.id}
        ordered = apply_ordering(select(_Item), "name", "asc", allowed)
        items = list(db.scalars(ordered).all())
        assert items[0].name == "Item 000"

    def test_valid_desc(self, db: Session) -> None:
        allowed = {"name": _Item.name, "id": _Item.id}
        ordered = apply_ordering(select(_Item), "name", "desc", allowed)
        items = list(db.scalars(ordered).all())
        assert items[0].name == "Item 019"

    def test_invalid_column_raises(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            apply_ordering(select(_Item), "invalid", "asc", {"name": _Item.name})
        assert exc_info.value.status_code == 400


class TestListResponse:
    def test_total_defaults_to_count(self) -> None:
        body = list_response([1, 2, 3], limit=10, offset=0)
        assert body == {"items": [1, 2, 3], "count": 3, "limit": 10, "offset": 0, "total": 3}

    def test_explicit_total(self) -> None:
        body = list_response([1], limit=1, offset=5, total=42)
        assert body["count"] == 1
        assert body["total"] == 42
