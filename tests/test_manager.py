"""Tests for ListViewManager and list_view_dependency."""

import asyncio
from typing import Dict, Optional
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from fastapi_listview.config import ListViewConfig
from fastapi_listview.manager import ListViewManager, list_view_dependency
from fastapi_listview.models import ListViewResponse
from fastapi_listview.state import ListViewState
from sqlalchemy import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, select
from starlette.datastructures import URL


class ListHero(SQLModel, table=True):
    """Hero model for list view tests."""

    __tablename__ = "list_hero"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    age: Optional[int] = Field(default=None, index=True)


class ListHeroPublic(SQLModel):
    """Public hero model for list view tests."""

    id: int
    name: str
    age: Optional[int]


FILTERS = [None, "list_hero.age >= 40"]


class DictStore:
    """In-memory state store standing in for a session."""

    def __init__(self):
        self.states: Dict[str, Dict[str, str]] = {}

    def load(self, name):
        return self.states.get(name)

    def save(self, name, state):
        self.states[name] = dict(state)


@pytest.fixture(name="session")
def session_fixture():
    """Create a test database session with 25 heroes aged 20..44."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        session.add_all([ListHero(name=f"Hero{i:02d}", age=20 + i) for i in range(25)])
        session.commit()
        yield session
    engine.dispose()


def make_client(session, config=None, state_store=None) -> TestClient:
    app = FastAPI()
    heroes_view = list_view_dependency(
        "list_hero", filters=FILTERS, config=config, state_store=state_store
    )

    def get_session():
        yield session

    @app.get("/heroes/", response_model=ListViewResponse[ListHeroPublic])
    def read_heroes(
        *,
        session: Session = Depends(get_session),
        view: ListViewManager = Depends(heroes_view),
    ):
        return view.generate_response(select(ListHero), session)

    return TestClient(app)


class TestListViewEndpoint:
    """End-to-end tests through a FastAPI app."""

    def test_defaults(self, session):
        response = make_client(session).get("/heroes/")
        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 10
        assert body["meta"]["pagination"]["count"] == 25
        assert body["meta"]["pagination"]["page_count"] == 3
        assert body["meta"]["state"] == {"filter": "0", "sorts": "", "page": "1", "pageSize": "10"}
        assert body["meta"]["filter_description"] == "Show all"
        assert body["links"]["prev"] is None
        assert "page=2" in body["links"]["next"]
        assert [link["page"] for link in body["links"]["pages"]] == [1, 2, 3]

    def test_sort_descending(self, session):
        body = make_client(session).get("/heroes/?sorts=AGE").json()
        ages = [hero["age"] for hero in body["data"]]
        assert ages == sorted(ages, reverse=True)
        assert ages[0] == 44
        assert body["meta"]["sorts"] == "AGE"
        assert body["meta"]["sort_description"] == "Sort descending by Age"

    def test_multi_column_sort(self, session):
        body = make_client(session).get("/heroes/?sorts=name:age&pageSize=0").json()
        names = [hero["name"] for hero in body["data"]]
        assert names == sorted(names)

    def test_filter_selection(self, session):
        body = make_client(session).get("/heroes/?filter=1").json()
        assert body["meta"]["pagination"]["count"] == 5
        assert all(hero["age"] >= 40 for hero in body["data"])
        assert body["meta"]["filter_description"] == "Show where list_hero.age >= 40"

    def test_last_page(self, session):
        body = make_client(session).get("/heroes/?page=3&sorts=age").json()
        assert [hero["age"] for hero in body["data"]] == [40, 41, 42, 43, 44]
        assert body["links"]["next"] is None
        assert "page=2" in body["links"]["prev"]
        assert body["meta"]["pagination"]["window"]["next_disabled"] is True

    def test_out_of_range_page_is_empty(self, session):
        body = make_client(session).get("/heroes/?page=9").json()
        assert body["data"] == []
        assert body["meta"]["pagination"]["page"] == 9

    def test_unpaginated(self, session):
        body = make_client(session).get("/heroes/?pageSize=0").json()
        assert len(body["data"]) == 25
        assert body["meta"]["pagination"]["page_count"] == 1
        assert body["meta"]["pagination"]["window"]["visible_pages"] == []

    def test_page_size_clamped(self, session):
        config = ListViewConfig(max_page_size=20)
        body = make_client(session, config=config).get("/heroes/?pageSize=500").json()
        assert body["meta"]["pagination"]["page_size"] == 20

    def test_malformed_values_ignored(self, session):
        body = make_client(session).get("/heroes/?page=abc&sorts=AGE:bad-token").json()
        assert body["meta"]["pagination"]["page"] == 1
        assert body["meta"]["sorts"] == "AGE"

    def test_strict_mode_rejects_malformed_values(self, session):
        client = make_client(session, config=ListViewConfig(strict_mode=True))
        response = client.get("/heroes/?page=abc")
        assert response.status_code == 400
        assert "page" in response.json()["detail"]

        response = client.get("/heroes/?sorts=bad-token")
        assert response.status_code == 400
        assert "bad-token" in response.json()["detail"]

    def test_strict_mode_unknown_sort_column(self, session):
        client = make_client(session, config=ListViewConfig(strict_mode=True))
        response = client.get("/heroes/?sorts=unknown")
        assert response.status_code == 400
        assert "available fields" in response.json()["detail"].lower()

    def test_unknown_sort_column_uses_default_order(self, session):
        client = make_client(session)
        default = client.get("/heroes/").json()
        response = client.get("/heroes/?sorts=nonexistent")
        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 10
        assert body["data"] == default["data"]

    def test_foreign_table_sort_ignored_without_opt_in(self, session):
        response = make_client(session).get("/heroes/?sorts=teams.Name")
        assert response.status_code == 200
        assert len(response.json()["data"]) == 10

    def test_state_store_persists_between_requests(self, session):
        store = DictStore()
        client = make_client(session, state_store=store)

        client.get("/heroes/?sorts=AGE&pageSize=5&page=2")
        assert store.states["list_hero"] == {
            "filter": "0",
            "sorts": "AGE",
            "page": "2",
            "pageSize": "5",
        }

        body = client.get("/heroes/?page=3").json()
        assert body["meta"]["state"] == {"filter": "0", "sorts": "AGE", "page": "3", "pageSize": "5"}
        assert [hero["age"] for hero in body["data"]] == [34, 33, 32, 31, 30]


class TestListViewManagerLinks:
    """Tests for what-if link URLs."""

    @pytest.fixture
    def manager(self):
        request = Mock()
        request.url = URL("http://testserver/heroes/?q=x")
        state = ListViewState("list_hero", filters=FILTERS, sorts="name", page=2, count=45)
        return ListViewManager(request, state)

    def test_sort_url_promotes_new_column(self, manager):
        url = URL(manager.sort_url("age"))
        assert "sorts=age%3Aname" in str(url)
        assert "page=1" in str(url)
        assert "q=x" in str(url)

    def test_sort_url_toggles_primary(self, manager):
        assert "sorts=NAME" in manager.sort_url("name")

    def test_filter_url(self, manager):
        assert "filter=1" in manager.filter_url()

    def test_page_url(self, manager):
        assert "page=5" in manager.page_url(5)

    def test_links_do_not_mutate_state(self, manager):
        before = manager.state.serialize()
        manager.sort_url("age")
        manager.filter_url()
        manager.page_url(4)
        manager.build_links()
        assert manager.state.serialize() == before

    def test_build_links(self, manager):
        links = manager.build_links()
        assert "page=1" in links.first
        assert "page=5" in links.last
        assert "page=1" in links.prev
        assert "page=3" in links.next
        assert [link.page for link in links.pages] == [1, 2, 3, 4, 5]
        assert [link.current for link in links.pages] == [False, True, False, False, False]

    def test_generate_response_async(self, manager):
        manager.state.count = 0
        count_result = Mock()
        count_result.one.return_value = 45
        rows_result = Mock()
        rows_result.all.return_value = ["a", "b"]
        session = Mock()
        session.exec = AsyncMock(side_effect=[count_result, rows_result])

        response = asyncio.run(manager.generate_response_async(select(ListHero), session))
        assert session.exec.await_count == 2
        assert manager.state.count == 45
        assert response.data == ["a", "b"]
        assert response.meta.pagination.count == 45
        assert response.meta.pagination.page_count == 5
        assert "page=3" in response.links.next
        assert "page=1" in response.links.prev
        assert [link.page for link in response.links.pages] == [1, 2, 3, 4, 5]
