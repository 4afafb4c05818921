"""Database schema migrations."""

import hashlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional

import aiosqlite
import structlog

from .exceptions import MigrationError

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


class Migration(NamedTuple):
    version: int
    filename: str
    sql: str
    checksum: str


class Migrator:
    """Applies numbered ``NNN_description.sql`` files in version order."""

    def __init__(self, db_path: Path, migrations_dir: Path = MIGRATIONS_DIR, enable_wal: bool = True):
        """
        Initialize migrator.

        Args:
            db_path: Path to SQLite database file
            migrations_dir: Directory containing migration SQL files
            enable_wal: Whether to enable WAL mode (only used if no connection provided)
        """
        self.db_path = db_path
        self.migrations_dir = migrations_dir
        self.enable_wal = enable_wal

    async def run_migrations(self, connection: Optional[aiosqlite.Connection] = None) -> List[int]:
        """
        Apply all pending migrations.

        Args:
            connection: Existing connection to migrate through. When omitted
                a short-lived connection is opened on ``db_path``.

        Returns:
            Versions applied by this call, in order

        Raises:
            MigrationError: If a migration cannot be read or fails to apply
        """
        if connection is not None:
            return await self._migrate(connection)

        async with aiosqlite.connect(str(self.db_path)) as db:
            await db.execute("PRAGMA foreign_keys = ON")
            if self.enable_wal:
                await db.execute("PRAGMA journal_mode = WAL")
            return await self._migrate(db)

    async def _migrate(self, db: aiosqlite.Connection) -> List[int]:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                filename TEXT NOT NULL,
                checksum TEXT NOT NULL,
                applied_at TEXT NOT NULL
            )
            """
        )
        await db.commit()

        applied = await self._applied_checksums(db)
        available = self._discover()

        for migration in available:
            recorded = applied.get(migration.version)
            if recorded is not None and recorded != migration.checksum:
                logger.warning(
                    "migration_checksum_mismatch",
                    version=migration.version,
                    filename=migration.filename,
                )

        pending = [m for m in available if m.version not in applied]
        if not pending:
            logger.info("no_pending_migrations", db_path=str(self.db_path))
            return []

        logger.info("migrations_pending", count=len(pending), db_path=str(self.db_path))

        for migration in pending:
            await self._apply(db, migration)

        logger.info("migrations_complete", applied=len(pending), db_path=str(self.db_path))
        return [m.version for m in pending]

    async def _apply(self, db: aiosqlite.Connection, migration: Migration) -> None:
        now = datetime.now(timezone.utc).isoformat()
        # executescript() commits before running, so the schema change and its
        # bookkeeping row are wrapped in one explicit transaction
        script = "\n".join(
            [
                "BEGIN;",
                migration.sql,
                "INSERT INTO schema_migrations (version, filename, checksum, applied_at) "
                f"VALUES ({migration.version}, '{migration.filename}', "
                f"'{migration.checksum}', '{now}');",
                "COMMIT;",
            ]
        )

        logger.info("migration_applying", version=migration.version, filename=migration.filename)
        try:
            await db.executescript(script)
        except Exception as e:
            if db.in_transaction:
                await db.rollback()
            logger.error(
                "migration_failed",
                version=migration.version,
                filename=migration.filename,
                error=str(e),
            )
            raise MigrationError(
                f"Migration {migration.filename} failed: {e}",
                version=migration.version,
                filename=migration.filename,
            ) from e

        logger.info("migration_applied", version=migration.version, filename=migration.filename)

    async def _applied_checksums(self, db: aiosqlite.Connection) -> Dict[int, str]:
        cursor = await db.execute("SELECT version, checksum FROM schema_migrations ORDER BY version")
        rows = await cursor.fetchall()
        return {row[0]: row[1] for row in rows}

    def _discover(self) -> List[Migration]:
        if not self.migrations_dir.exists():
            logger.warning("migrations_dir_not_found", path=str(self.migrations_dir))
            return []

        migrations = []
        for sql_file in sorted(self.migrations_dir.glob("*.sql")):
            try:
                version = int(sql_file.stem.split("_")[0])
            except ValueError:
                logger.warning("migration_filename_invalid", filename=sql_file.name)
                continue

            try:
                sql = sql_file.read_text(encoding="utf-8")
            except OSError as e:
                raise MigrationError(
                    f"Failed to read migration {sql_file.name}: {e}",
                    version=version,
                    filename=sql_file.name,
                ) from e

            checksum = hashlib.sha256(sql.encode()).hexdigest()
            migrations.append(Migration(version, sql_file.name, sql, checksum))

        migrations.sort(key=lambda m: m.version)
        return migrations
