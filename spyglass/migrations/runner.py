"""Schema migrations for the subscription store.

Migrations are ``NNN_description.sql`` files under ``versions/``, applied in
filename order and recorded in ``spyglass_migrations`` together with a
checksum of their SQL. All pending files are applied in one transaction
under an advisory lock, so two instances starting together cannot both
apply the same version.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path

import asyncpg

logger = logging.getLogger(__name__)

VERSIONS_DIR = Path(__file__).resolve().parent / "versions"

# Arbitrary key shared by every spyglass instance
MIGRATION_LOCK_ID = 0x5350_5947


@dataclass(frozen=True)
class Migration:
    version: str
    sql: str

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.sql.encode("utf-8")).hexdigest()

    @classmethod
    def from_path(cls, path: Path) -> Migration:
        return cls(version=path.stem, sql=path.read_text(encoding="utf-8"))


def discover(migrations_dir: Path = VERSIONS_DIR) -> list[Migration]:
    return [Migration.from_path(p) for p in sorted(migrations_dir.glob("*.sql"))]


class MigrationRunner:
    TRACKING_TABLE = "spyglass_migrations"

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def run_pending(self, migrations: list[Migration] | None = None) -> list[str]:
        """Apply every migration not yet recorded. Returns the applied versions."""
        if migrations is None:
            migrations = discover()

        applied: list[str] = []
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("SELECT pg_advisory_xact_lock($1)", MIGRATION_LOCK_ID)
                await conn.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {self.TRACKING_TABLE} (
                        version    TEXT PRIMARY KEY,
                        checksum   TEXT NOT NULL,
                        applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                    )
                    """
                )
                rows = await conn.fetch(f"SELECT version, checksum FROM {self.TRACKING_TABLE}")
                recorded = {row["version"]: row["checksum"] for row in rows}

                for migration in migrations:
                    known = recorded.get(migration.version)
                    if known is not None:
                        if known != migration.checksum:
                            logger.warning(
                                f"Migration {migration.version} changed after it was applied"
                            )
                        continue

                    logger.info(f"Applying migration {migration.version}")
                    await conn.execute(migration.sql)
                    await conn.execute(
                        f"INSERT INTO {self.TRACKING_TABLE} (version, checksum) VALUES ($1, $2)",
                        migration.version,
                        migration.checksum,
                    )
                    applied.append(migration.version)

        if applied:
            logger.info(f"Applied {len(applied)} migration(s): {', '.join(applied)}")
        else:
            logger.debug("Subscription store schema is up to date")
        return applied
