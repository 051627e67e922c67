"""Raw SQL migrations that live beside the Django migration graph.

Files in ``settings.SQL_MIGRATIONS_DIR`` are applied in filename order and
recorded in ``SchemaMigration``. A file is applied at most once; objects that
already exist in the database count as applied rather than failing the run.
"""

import hashlib
import logging
import time
from pathlib import Path

from django.conf import settings
from django.db import DatabaseError, connections, transaction

from core.models import SchemaMigration

logger = logging.getLogger(__name__)

# duplicate_table, unique_violation, duplicate_object
BENIGN_SQLSTATES = frozenset({"42P07", "23505", "42710"})
ALREADY_EXISTS_MARKER = "already exists"


def file_checksum(sql):
    return hashlib.sha256(sql.encode("utf-8")).hexdigest()


def discover_migration_files(directory):
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(path for path in directory.glob("*.sql") if path.is_file())


def _sqlstate(exc):
    while exc is not None:
        code = getattr(exc, "sqlstate", None) or getattr(exc, "pgcode", None)
        if code:
            return code
        exc = exc.__cause__
    return None


def is_benign_error(exc):
    code = _sqlstate(exc)
    if code:
        return code in BENIGN_SQLSTATES
    return ALREADY_EXISTS_MARKER in str(exc).lower()


def _execute_script(connection, sql):
    with connection.cursor() as cursor:
        for statement in connection.ops.prepare_sql_script(sql):
            cursor.execute(statement)


def apply_sql_migrations(directory=None, using="default"):
    """Apply pending SQL files and return ``{"applied": [...], "skipped": [...]}``.

    A non-benign failure rolls back the failing file and propagates; files
    applied before it stay recorded.
    """
    directory = Path(directory or settings.SQL_MIGRATIONS_DIR)
    connection = connections[using]
    recorded = {row.filename: row for row in SchemaMigration.objects.using(using).all()}
    applied, skipped = [], []

    for path in discover_migration_files(directory):
        sql = path.read_text(encoding="utf-8")
        checksum = file_checksum(sql)
        existing = recorded.get(path.name)
        if existing is not None:
            if existing.checksum != checksum:
                logger.warning("sql_migration_checksum_changed file=%s", path.name)
            skipped.append(path.name)
            continue

        started_at = time.perf_counter()
        try:
            with transaction.atomic(using=using):
                _execute_script(connection, sql)
        except DatabaseError as exc:
            if not is_benign_error(exc):
                logger.error("sql_migration_failed file=%s error=%s", path.name, exc)
                raise
            logger.warning("sql_migration_objects_exist file=%s error=%s", path.name, exc)

        SchemaMigration.objects.using(using).create(
            filename=path.name,
            checksum=checksum,
            execution_time_ms=int((time.perf_counter() - started_at) * 1000),
        )
        logger.info("sql_migration_applied file=%s", path.name)
        applied.append(path.name)

    return {"applied": applied, "skipped": skipped}
