"""Shared fixtures: an in-process Redis, stores and a controllable clock."""

from datetime import date

import fakeredis
import pytest
import redis

from config import Settings
from core.models import Category, Node, Unit
from core.student_ledger import StudentLedger
from core.template_store import TemplateStore
from redis_store import RedisStore

DEMO_ID = "student-demo"


class FixedClock:
    """Callable date source tests can move forward."""

    def __init__(self, day: date):
        self.day = day

    def __call__(self) -> date:
        return self.day


@pytest.fixture
def settings():
    return Settings(key_prefix="test", demo_student_id=DEMO_ID)


@pytest.fixture
def store(settings):
    return RedisStore(client=fakeredis.FakeRedis(decode_responses=True), settings=settings)


class FlakyRedis(fakeredis.FakeRedis):
    """In-process Redis whose reads, writes and pings can be made to fail."""
    fail_reads = False
    fail_writes = False

    def get(self, name):
        if self.fail_reads:
            raise redis.ConnectionError("connection refused")
        return super().get(name)

    def set(self, name, value, *args, **kwargs):
        if self.fail_writes:
            raise redis.ConnectionError("connection refused")
        return super().set(name, value, *args, **kwargs)

    def ping(self, **kwargs):
        if self.fail_reads:
            raise redis.ConnectionError("connection refused")
        return super().ping(**kwargs)


@pytest.fixture
def flaky_store(settings):
    return RedisStore(client=FlakyRedis(decode_responses=True), settings=settings)


@pytest.fixture
def templates(store):
    return TemplateStore(store)


@pytest.fixture
def clock():
    return FixedClock(date(2024, 5, 1))


@pytest.fixture
def ledger(store, clock):
    return StudentLedger(store, DEMO_ID, clock=clock)


def make_node(node_id, prerequisites=(), title=None, category=Category.DEFINITION, difficulty=1):
    return Node(
        id=node_id,
        title=title or f"Node {node_id}",
        description=f"About {node_id}",
        category=category,
        difficulty=difficulty,
        prerequisites=list(prerequisites),
        tags=["t"],
    )


@pytest.fixture
def sample_unit():
    """A <- B, A <- C, D alone; E depends on B and C."""
    return Unit(
        unit_id="custom-sample",
        unit_name="Sample",
        grade="Grade 9",
        description="Sample unit",
        nodes=[
            make_node("A"),
            make_node("B", ["A"], category=Category.OPERATION, difficulty=2),
            make_node("C", ["A"], category=Category.GRAPH, difficulty=3),
            make_node("D"),
            make_node("E", ["B", "C"], category=Category.APPLICATION, difficulty=4),
        ],
        prerequisite_unit_ids=["square_root"],
    )
