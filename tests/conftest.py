"""pytest 共通設定: DB テスト基盤とチャンク入力ヘルパー."""

from __future__ import annotations

import os
from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock

import pytest

# --- 接続文字列 ---
POSTGRESQL_URL = os.environ.get(
    "PSQLCHUNKS_TEST_POSTGRESQL_URL",
    "host=localhost port=5432 dbname=psqlchunks_test user=psqlchunks password=psqlchunks_test_pass",
)


def _can_connect_postgresql() -> bool:
    """PostgreSQL に接続可能か判定する."""
    try:
        import psycopg

        conn = psycopg.connect(POSTGRESQL_URL, connect_timeout=3)
        conn.close()
    except Exception:
        return False
    return True


# --- DB 接続可否キャッシュ ---
_pg_available: bool | None = None


def _is_pg_available() -> bool:
    global _pg_available
    if _pg_available is None:
        _pg_available = _can_connect_postgresql()
    return _pg_available


# --- マーカーによる自動スキップ ---
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """DB マーカー付きテストを接続不可時に自動スキップする."""
    for item in items:
        if "postgresql" in item.keywords and not _is_pg_available():
            item.add_marker(pytest.mark.skip(reason="PostgreSQL is not available"))


# --- DB fixture ---
@pytest.fixture
def pg_url() -> str:
    """PostgreSQL の接続文字列."""
    return POSTGRESQL_URL


@pytest.fixture
def pg_conn() -> Generator[Any, None, None]:
    """PostgreSQL 接続 fixture（autocommit）."""
    import psycopg

    conn = psycopg.connect(POSTGRESQL_URL, autocommit=True)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def mock_conn() -> MagicMock:
    """psycopg 接続のモック（接続済み）."""
    conn = MagicMock()
    conn.closed = False
    conn.broken = False
    return conn

