"""Tests for PaginationEngine."""

import asyncio
from typing import Optional
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi_listview.models import QueryParameters
from fastapi_listview.pagination import PaginationEngine
from sqlalchemy import text
from sqlmodel import Field, Session, SQLModel, create_engine, select


class PaginationTestModel(SQLModel, table=True):
    """Test model for pagination engine tests."""

    __tablename__ = "pagination_test_model"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(default="")
    age: Optional[int] = Field(default=None)


@pytest.fixture(scope="module")
def engine():
    eng = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(eng)
    return eng


@pytest.fixture
def seeded_session(engine):
    """Session with 15 rows."""
    with Session(engine) as session:
        for item in session.exec(select(PaginationTestModel)).all():
            session.delete(item)
        session.commit()

        session.add_all([PaginationTestModel(name=f"Item{i}", age=20 + i) for i in range(15)])
        session.commit()
        yield session


class TestPaginationEngine:
    """Tests for offset/limit pagination."""

    def test_paginate_first_page(self, seeded_session):
        pe = PaginationEngine(QueryParameters(offset=0, limit=5))
        results = pe.paginate(select(PaginationTestModel), seeded_session)
        assert len(results) == 5

    def test_paginate_last_page_partial(self, seeded_session):
        pe = PaginationEngine(QueryParameters(offset=10, limit=10))
        results = pe.paginate(select(PaginationTestModel), seeded_session)
        assert len(results) == 5

    def test_paginate_out_of_range(self, seeded_session):
        pe = PaginationEngine(QueryParameters(offset=100, limit=10))
        assert pe.paginate(select(PaginationTestModel), seeded_session) == []

    def test_unpaginated_returns_everything(self, seeded_session):
        pe = PaginationEngine(QueryParameters())
        query = select(PaginationTestModel)
        assert "LIMIT" not in str(pe.apply_limits(query))
        assert len(pe.paginate(query, seeded_session)) == 15

    def test_count_total(self, seeded_session):
        pe = PaginationEngine(QueryParameters(offset=0, limit=5))
        assert pe.count_total(select(PaginationTestModel), seeded_session) == 15

    def test_count_ignores_textual_order(self, seeded_session):
        pe = PaginationEngine(QueryParameters(offset=0, limit=5))
        query = select(PaginationTestModel).order_by(text("pagination_test_model.age DESC"))
        assert pe.count_total(query, seeded_session) == 15

    def test_paginate_with_count(self, seeded_session):
        pe = PaginationEngine(QueryParameters(offset=5, limit=5))
        query = select(PaginationTestModel).where(PaginationTestModel.age >= 30)
        data, total = pe.paginate_with_count(query, seeded_session)
        assert total == 5
        assert data == []


class TestPaginationEngineAsync:
    """Tests for the async variants, with a mocked AsyncSession."""

    def test_paginate_with_count_async(self):
        count_result = Mock()
        count_result.one.return_value = 42
        rows_result = Mock()
        rows_result.all.return_value = ["a", "b"]
        session = Mock()
        session.exec = AsyncMock(side_effect=[count_result, rows_result])

        pe = PaginationEngine(QueryParameters(offset=0, limit=2))
        data, total = asyncio.run(
            pe.paginate_with_count_async(select(PaginationTestModel), session)
        )
        assert total == 42
        assert data == ["a", "b"]
        assert session.exec.await_count == 2
