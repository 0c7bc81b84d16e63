"""Purge of expired ephemeral messages."""

from __future__ import annotations

import logging
import time
from typing import Dict

import asyncpg

from fraterna.infra.postgres import get_pool
from fraterna.obs import metrics as obs_metrics
from fraterna.settings import settings

logger = logging.getLogger(__name__)

# tables whose rows carry an expires_at column
EPHEMERAL_TABLES = ("chat_messages", "emergency_messages")


async def purge_expired_messages(batch: int | None = None) -> Dict[str, int]:
    limit = batch or settings.retention_batch_size
    start = time.perf_counter()
    counts: Dict[str, int] = {table: 0 for table in EPHEMERAL_TABLES}
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            for table in EPHEMERAL_TABLES:
                while True:
                    purged = await _purge_batch(conn, table, limit)
                    counts[table] += purged
                    if purged < limit:
                        break
    except Exception:
        obs_metrics.record_job_run("retention_purge", result="error", duration_seconds=time.perf_counter() - start)
        logger.exception("retention_purge_failed")
        raise
    obs_metrics.record_job_run("retention_purge", result="ok", duration_seconds=time.perf_counter() - start)
    logger.info("retention_purge_done", extra={"purged": counts})
    return counts


async def _purge_batch(conn: asyncpg.Connection, table: str, limit: int) -> int:
    q = f"""
    WITH doomed AS (
      SELECT id FROM {table}
      WHERE expires_at <= NOW()
      LIMIT $1
    )
    DELETE FROM {table} t USING doomed d WHERE t.id = d.id
    RETURNING 1;
    """
    rows = await conn.fetch(q, limit)
    return len(rows)
