from __future__ import annotations

import uuid
from collections.abc import Callable
from pathlib import Path

from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url


def create_test_database(base_url: str, tmp_path: Path) -> tuple[str, Callable[[], None] | None]:
    """Return a throwaway database URL plus its cleanup callback.

    PostgreSQL gets a fresh database on the same server; anything else falls
    back to a SQLite file under ``tmp_path``.
    """
    if not base_url.startswith("postgres"):
        return f"sqlite+pysqlite:///{tmp_path / 'zeus_test.db'}", None

    url = make_url(base_url)
    db_name = f"zeus_test_{uuid.uuid4().hex}"
    admin_url = url.set(database="postgres")

    engine = create_engine(admin_url, isolation_level="AUTOCOMMIT", future=True)
    with engine.connect() as conn:
        conn.execute(text(f'CREATE DATABASE "{db_name}"'))
    engine.dispose()

    def cleanup() -> None:
        drop_engine = create_engine(admin_url, isolation_level="AUTOCOMMIT", future=True)
        with drop_engine.connect() as conn:
            conn.execute(
                text(
                    """
                    SELECT pg_terminate_backend(pid)
                    FROM pg_stat_activity
                    WHERE datname = :db_name
                    """
                ),
                {"db_name": db_name},
            )
            conn.execute(text(f'DROP DATABASE IF EXISTS "{db_name}"'))
        drop_engine.dispose()

    return url.set(database=db_name).render_as_string(hide_password=False), cleanup
