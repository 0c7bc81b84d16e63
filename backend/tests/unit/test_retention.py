from contextlib import asynccontextmanager

import pytest

from fraterna.maintenance import retention


class FakeConnection:
    def __init__(self, pending):
        self.pending = dict(pending)
        self.queries = 0

    async def fetch(self, sql, limit):
        self.queries += 1
        table = next(name for name in self.pending if f"FROM {name}" in sql)
        taken = min(limit, self.pending[table])
        self.pending[table] -= taken
        return [1] * taken


class FakePool:
    def __init__(self, conn):
        self.conn = conn

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


@pytest.mark.asyncio
async def test_purge_runs_in_batches(monkeypatch):
    conn = FakeConnection({"chat_messages": 5, "emergency_messages": 2})

    async def fake_get_pool():
        return FakePool(conn)

    monkeypatch.setattr(retention, "get_pool", fake_get_pool)
    counts = await retention.purge_expired_messages(batch=2)
    assert counts == {"chat_messages": 5, "emergency_messages": 2}
    # 2 + 2 + 1 for chat, 2 + 0 for emergency
    assert conn.queries == 5


@pytest.mark.asyncio
async def test_purge_failure_propagates(monkeypatch):
    async def broken():
        raise ConnectionError("db down")

    monkeypatch.setattr(retention, "get_pool", broken)
    with pytest.raises(ConnectionError):
        await retention.purge_expired_messages()
