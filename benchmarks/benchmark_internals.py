"""Benchmark internal operations of fastapi-listview to identify bottlenecks."""

import time
from typing import Optional

from fastapi_listview.manager import ListViewManager
from fastapi_listview.pagination import compute_window
from fastapi_listview.sorting import SortList, SortSpec
from fastapi_listview.state import ListViewState
from sqlmodel import Field, Session, SQLModel, create_engine, select
from starlette.datastructures import URL


class Hero(SQLModel, table=True):
    """Hero model for benchmarking."""

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    secret_name: str
    age: Optional[int] = Field(default=None, index=True)
    city: str = Field(default="")


def time_function(func, iterations: int = 1000):
    """Time a function execution."""
    # Warmup
    for _ in range(10):
        func()

    timings = []
    for _ in range(iterations):
        start = time.perf_counter()
        func()
        end = time.perf_counter()
        timings.append(end - start)

    timings.sort()
    avg = sum(timings) / len(timings)
    p50 = timings[int(len(timings) * 0.5)]
    p95 = timings[int(len(timings) * 0.95)]
    return {"avg": avg * 1000, "p50": p50 * 1000, "p95": p95 * 1000}


def report(tests, iterations: int = 10000):
    for name, func in tests.items():
        result = time_function(func, iterations=iterations)
        print(
            f"  {name:30s} - Avg: {result['avg']:6.3f}ms, "
            f"P50: {result['p50']:6.3f}ms, P95: {result['p95']:6.3f}ms"
        )


def setup_database(num_records: int = 1000):
    """Set up in-memory database with test data."""
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(engine)

    cities = ["New York", "Los Angeles", "Chicago", "Houston", "Phoenix"]
    with Session(engine) as session:
        session.add_all(
            [
                Hero(
                    name=f"Hero_{i}",
                    secret_name=f"Secret_{i}",
                    age=20 + (i % 60),
                    city=cities[i % len(cities)],
                )
                for i in range(num_records)
            ]
        )
        session.commit()
    return engine


def benchmark_sort_tokens():
    """Benchmark sort token parsing and encoding."""
    print("\n=== Benchmark: sort tokens ===")

    sorts = SortList.from_param("NAME:age:hero.City", "hero")
    report(
        {
            "Parse token": lambda: SortSpec.parse("hero.Name", "hero"),
            "Parse 3-token list": lambda: SortList.from_param("NAME:age:city", "hero"),
            "Push column": lambda: sorts.push("secret_name"),
            "Encode list": sorts.to_param,
            "Order fragment": sorts.to_order_fragment,
        }
    )


def benchmark_compute_window():
    """Benchmark the pager window computation."""
    print("\n=== Benchmark: compute_window ===")

    report(
        {
            "20 pages, first page": lambda: compute_window(1, 20),
            "1000 pages, middle page": lambda: compute_window(500, 1000),
            "1000 pages, wide window": lambda: compute_window(500, 1000, 20, 3),
        }
    )


def benchmark_state_round_trip():
    """Benchmark state serialization between requests."""
    print("\n=== Benchmark: state round trip ===")

    filters = [None, "hero.age >= 30", "hero.age < 30"]
    params = {"filter": "1", "sorts": "NAME:age", "page": "3", "pageSize": "25"}
    state = ListViewState("hero", filters=filters).deserialize(params)
    report(
        {
            "Deserialize": lambda: ListViewState("hero", filters=filters).deserialize(params),
            "Serialize": state.serialize,
            "Copy + change_sort": lambda: state.copy().change_sort("city"),
            "Query parameters": state.to_query_parameters,
        }
    )


def benchmark_generate_response():
    """Benchmark a full page request against SQLite."""
    print("\n=== Benchmark: generate_response ===")

    engine = setup_database(1000)
    with Session(engine) as session:
        request = type("Request", (), {"url": URL("http://localhost/heroes/")})()

        def run(params):
            state = ListViewState("hero", filters=[None, "hero.age >= 30"]).deserialize(params)
            ListViewManager(request, state).generate_response(select(Hero), session)

        report(
            {
                "Unsorted page": lambda: run({}),
                "Sorted page": lambda: run({"sorts": "AGE:name"}),
                "Filtered sorted page": lambda: run({"sorts": "AGE", "filter": "1"}),
                "Deep page": lambda: run({"sorts": "name", "page": "40"}),
            },
            iterations=200,
        )


if __name__ == "__main__":
    benchmark_sort_tokens()
    benchmark_compute_window()
    benchmark_state_round_trip()
    benchmark_generate_response()
