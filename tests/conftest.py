"""Shared fixtures: an in-memory Supabase table store and canned GS Engage data."""

import pytest

from scripts.lib.circuit_breaker import CircuitBreaker
from scripts.lib.config import Settings

TEST_ENV = {
    "GROWTHSTATION_API_URL": "https://gs.example.test/api/",
    "GROWTHSTATION_API_KEY": "test-key",
    "SUPABASE_URL": "https://project.supabase.test",
    "SUPABASE_SERVICE_ROLE_KEY": "service-role-key",
}


class FakeResult:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Just enough of the supabase-py query builder for the code under test."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self._columns = "*"
        self._predicates = []
        self._orders = []
        self._limit = None
        self._range = None
        self._op = "select"
        self._payload = None
        self._on_conflict = None

    def select(self, columns="*"):
        self._columns = columns
        return self

    def eq(self, column, value):
        self._predicates.append(lambda r: r.get(column) == value)
        return self

    def gte(self, column, value):
        self._predicates.append(lambda r: r.get(column) is not None and r.get(column) >= value)
        return self

    def lte(self, column, value):
        self._predicates.append(lambda r: r.get(column) is not None and r.get(column) <= value)
        return self

    def order(self, column, desc=False):
        self._orders.append((column, desc))
        return self

    def limit(self, n):
        self._limit = n
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def upsert(self, rows, on_conflict=None, ignore_duplicates=False):
        self._op = "upsert"
        self._payload = rows
        self._on_conflict = on_conflict
        return self

    def insert(self, rows):
        self._op = "insert"
        self._payload = rows
        return self

    def execute(self):
        if self._op == "select":
            return self._select()
        return self._write()

    def _select(self):
        if self.db.fail_selects:
            raise RuntimeError("select failed")
        rows = [r for r in self.db.tables.get(self.table, []) if all(p(r) for p in self._predicates)]
        self.db.select_calls += 1
        # Apply sort keys last-to-first so the first order() is the primary key
        for column, desc in reversed(self._orders):
            rows = sorted(rows, key=lambda r: r.get(column) or "", reverse=desc)
        if self._range is not None:
            start, end = self._range
            rows = rows[start : end + 1]
        if self._limit is not None:
            rows = rows[: self._limit]
        # PostgREST max-rows cap
        rows = rows[: self.db.max_rows]
        if self._columns != "*":
            cols = [c.strip() for c in self._columns.split(",")]
            rows = [{c: r.get(c) for c in cols} for r in rows]
        return FakeResult([dict(r) for r in rows])

    def _write(self):
        self.db.write_calls += 1
        if self.db.fail_writes_after is not None and self.db.write_calls > self.db.fail_writes_after:
            raise RuntimeError("connection reset by peer")

        rows = [dict(r) for r in self._payload]
        if self._on_conflict:
            keys = [k.strip() for k in self._on_conflict.split(",")]
            seen = set()
            for row in rows:
                ident = tuple(row.get(k) for k in keys)
                if ident in seen:
                    raise RuntimeError("ON CONFLICT DO UPDATE command cannot affect row a second time")
                seen.add(ident)

        table = self.db.tables.setdefault(self.table, [])
        for row in rows:
            existing = None
            if self._on_conflict:
                existing = next(
                    (r for r in table if all(r.get(k) == row.get(k) for k in keys)), None
                )
            if existing is not None:
                existing.update(row)
            else:
                table.append(row)
        return FakeResult(rows)


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.write_calls = 0
        self.fail_writes_after = None
        self.fail_selects = False
        self.select_calls = 0
        self.max_rows = 1000

    def table(self, name):
        return FakeQuery(self, name)

    def rows(self, table="performance_data"):
        return self.tables.get(table, [])


class FakeSource:
    """Stands in for GrowthstationClient."""

    def __init__(self, prospections=None, leads=None, error=None):
        self.prospections = prospections or []
        self.leads = leads or []
        self.error = error
        self.calls = 0

    def get_prospections(self):
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.prospections)

    def get_leads(self):
        return list(self.leads)

    def get_status(self):
        return {"name": "Growthstation", "circuit": {"state": "CLOSED"}}


def responsible(user_id, first, last="", email=None):
    ref = {"firstName": first, "lastName": last}
    if user_id is not None:
        ref["id"] = user_id
    if email:
        ref["email"] = email
    return ref


ANA = responsible("u-ana", "Ana", "Souza")
BRUNO = responsible("u-bruno", "Bruno", "Lima")


@pytest.fixture(autouse=True)
def reset_breakers():
    CircuitBreaker.reset_all()
    yield
    CircuitBreaker.reset_all()


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def settings():
    return Settings.from_env(env=TEST_ENV)


@pytest.fixture
def sample_prospections():
    return [
        {"id": "p1", "responsible": ANA, "status": "WON", "meeting": True,
         "startDate": "2024-03-01T10:00:00Z", "endDate": "2024-03-01T15:00:00Z"},
        {"id": "p2", "responsible": ANA, "status": "LOST", "lostReason": "cliente no-show"},
        {"id": "p3", "responsible": BRUNO, "status": "active", "meeting": True},
        {"id": "p4", "responsible": BRUNO, "status": "FINISHED", "meeting": True,
         "startDate": "2024-03-01T08:00:00Z", "endDate": "2024-03-02T08:00:00Z"},
    ]


@pytest.fixture
def sample_leads():
    return [
        {"id": "l1", "responsible": ANA},
        {"id": "l2", "responsible": BRUNO},
        {"id": "l3", "responsible": BRUNO},
    ]


@pytest.fixture
def make_source():
    return FakeSource
