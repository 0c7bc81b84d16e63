"""Apply bundled SQL migrations in version order."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

import asyncpg

from fraterna.infra.postgres import get_pool

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def discover(directory: Path = MIGRATIONS_DIR) -> List[Path]:
    return sorted(path for path in directory.glob("*.sql") if path.is_file())


def version_of(path: Path) -> str:
    return path.name.split("_", 1)[0]


async def _applied_versions(conn: asyncpg.Connection) -> set[str]:
    exists = await conn.fetchval("SELECT to_regclass('schema_migrations') IS NOT NULL")
    if not exists:
        return set()
    rows = await conn.fetch("SELECT version FROM schema_migrations")
    return {str(row["version"]) for row in rows}


async def apply_pending(paths: Optional[Sequence[Path]] = None) -> List[str]:
    """Run every migration not yet recorded in ``schema_migrations``."""
    pool = await get_pool()
    applied: List[str] = []
    async with pool.acquire() as conn:
        done = await _applied_versions(conn)
        for path in paths if paths is not None else discover():
            version = version_of(path)
            if version in done:
                continue
            logger.info("migration_apply", extra={"version": version, "file": path.name})
            async with conn.transaction():
                await conn.execute(path.read_text(encoding="utf-8"))
                await conn.execute(
                    "INSERT INTO schema_migrations (version) VALUES ($1) ON CONFLICT DO NOTHING",
                    version,
                )
            applied.append(version)
    return applied
