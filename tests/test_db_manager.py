from unittest.mock import MagicMock

import pytest

import athlete_badges.database.db_manager as db_manager
from athlete_badges.database.db_manager import DBManager


@pytest.fixture()
def conn(monkeypatch):
    conn = MagicMock()
    conn.closed = False
    cursor = conn.cursor.return_value.__enter__.return_value
    cursor.description = [('id',)]
    cursor.fetchall.return_value = [{'id': 'a1'}]
    monkeypatch.setattr(DBManager, '_pool', None)
    monkeypatch.setenv('DATABASE_URL', 'postgresql://localhost/badges_test')
    monkeypatch.setattr(db_manager.psycopg, 'connect', MagicMock(return_value=conn))
    return conn


def test_commits_and_closes_on_success(conn):
    with DBManager() as db:
        assert db.fetchone('SELECT id FROM student_badges') == {'id': 'a1'}
    conn.commit.assert_called_once()
    conn.rollback.assert_not_called()
    conn.close.assert_called_once()


def test_rolls_back_on_error(conn):
    with pytest.raises(ValueError):
        with DBManager() as db:
            db.execute('UPDATE badges SET is_active = %s', (False,))
            raise ValueError('boom')
    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()


def test_fetchall_without_result_set(conn):
    cursor = conn.cursor.return_value.__enter__.return_value
    cursor.description = None
    with DBManager() as db:
        assert db.fetchall('DELETE FROM badge_rules') == []


def test_executemany_skips_empty_batches(conn):
    with DBManager() as db:
        db.executemany('INSERT INTO badge_rules VALUES (%s)', [])
    conn.cursor.assert_not_called()


def test_requires_context():
    with pytest.raises(RuntimeError, match='not in a context'):
        DBManager().fetchall('SELECT 1')


def test_missing_database_url(monkeypatch):
    monkeypatch.setattr(DBManager, '_pool', None)
    monkeypatch.delenv('DATABASE_URL', raising=False)
    with pytest.raises(RuntimeError, match='DATABASE_URL'):
        with DBManager():
            pass


def test_pool_connections_are_returned(monkeypatch):
    pool = MagicMock()
    pooled = pool.getconn.return_value
    monkeypatch.setattr(DBManager, '_pool', pool)
    with DBManager():
        pass
    pooled.commit.assert_called_once()
    pool.putconn.assert_called_once_with(pooled)
