import os
import random
from collections.abc import Generator
from typing import Any

import psycopg
import pytest

from record_worker.config.settings import Settings
from record_worker.database.connection import close_pool, get_connection, init_pool
from record_worker.database.schema import ensure_schema


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "records_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            conn.execute("SELECT 1")
        ensure_schema()
    except Exception as e:
        close_pool()
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a test database"
        )
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def folder_id(integration_pool: None) -> Generator[int, None, None]:
    """A folder id no other test run uses; its rows are removed afterwards."""
    folder = random.randint(1_000_000, 2_000_000_000)
    yield folder
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "DELETE FROM operations WHERE record_id IN "
                "(SELECT id FROM records WHERE folder_id = %s)",
                (folder,),
            )
            cur.execute("DELETE FROM records WHERE folder_id = %s", (folder,))
        conn.commit()
