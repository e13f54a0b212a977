"""Ad-hoc schema upgrades for local databases created by older releases."""

from __future__ import annotations

from sqlalchemy import text


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def ensure_sync_queue_columns(conn) -> None:
    columns = {
        "local_id": "INTEGER",
        "last_error": "TEXT",
        "next_try_at": "DATETIME",
    }
    for name, ddl_type in columns.items():
        if not _column_exists(conn, "sync_queue", name):
            conn.execute(text(f"ALTER TABLE sync_queue ADD COLUMN {name} {ddl_type}"))

    conn.execute(
        text(
            """
            UPDATE sync_queue
            SET next_try_at = CURRENT_TIMESTAMP
            WHERE next_try_at IS NULL
            """
        )
    )
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS ix_sync_queue_next_try_at
            ON sync_queue (next_try_at)
            """
        )
    )


def ensure_mapping_unique_index(conn) -> None:
    # Older databases were created before the (entity_type, local_id) constraint.
    conn.execute(
        text(
            """
            DELETE FROM id_mapping
            WHERE id NOT IN (
                SELECT MIN(id) FROM id_mapping GROUP BY entity_type, local_id
            )
            """
        )
    )
    conn.execute(
        text(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS ux_id_mapping_local
            ON id_mapping (entity_type, local_id)
            """
        )
    )


def run_all(engine) -> None:
    with engine.begin() as conn:
        ensure_sync_queue_columns(conn)
        ensure_mapping_unique_index(conn)


__all__ = ["run_all"]
