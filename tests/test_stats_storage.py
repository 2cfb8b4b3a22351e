#!/usr/bin/env python3
"""
Stats Storage Tests
In-memory, JSON file and PostgreSQL persistence ports
"""

from unittest import mock

import pytest

from stats_storage import (
    InMemoryStatsStorage, JsonFileStatsStorage, PostgresStatsStorage, create_storage,
)

KEY = "vocab_master_stats_learner@example.com"
VALUE = {"totalAttempts": 1, "correctAttempts": 1, "masteredWords": ["candid"], "history": []}


class TestInMemoryStorage:
    def test_round_trip(self):
        storage = InMemoryStatsStorage()
        storage.save(KEY, VALUE)
        assert storage.load(KEY) == VALUE

    def test_missing_key(self):
        assert InMemoryStatsStorage().load(KEY) is None

    def test_loaded_value_is_a_copy(self):
        storage = InMemoryStatsStorage()
        storage.save(KEY, VALUE)
        loaded = storage.load(KEY)
        loaded["masteredWords"].append("lucid")
        assert storage.load(KEY)["masteredWords"] == ["candid"]

    def test_delete(self):
        storage = InMemoryStatsStorage()
        storage.save(KEY, VALUE)
        storage.delete(KEY)
        storage.delete(KEY)
        assert storage.load(KEY) is None


class TestJsonFileStorage:
    def test_round_trip(self, tmp_path):
        storage = JsonFileStatsStorage(str(tmp_path))
        storage.save(KEY, VALUE)
        assert storage.load(KEY) == VALUE
        assert JsonFileStatsStorage(str(tmp_path)).load(KEY) == VALUE

    def test_creates_directory(self, tmp_path):
        directory = tmp_path / "nested" / "stats"
        JsonFileStatsStorage(str(directory))
        assert directory.is_dir()

    def test_no_temp_files_left(self, tmp_path):
        storage = JsonFileStatsStorage(str(tmp_path))
        storage.save(KEY, VALUE)
        storage.save(KEY, VALUE)
        assert [p.suffix for p in tmp_path.iterdir()] == [".json"]

    def test_unsafe_key_characters_replaced(self, tmp_path):
        storage = JsonFileStatsStorage(str(tmp_path))
        storage.save("../escape/key", VALUE)
        assert storage.load("../escape/key") == VALUE
        assert len(list(tmp_path.iterdir())) == 1

    def test_similar_keys_stay_separate(self, tmp_path):
        storage = JsonFileStatsStorage(str(tmp_path))
        storage.save("vocab_master_stats_a+b@x.com", VALUE)
        assert storage.load("vocab_master_stats_a_b@x.com") is None
        assert storage.load("vocab_master_stats_a b@x.com") is None

        storage.save("vocab_master_stats_a_b@x.com", {"totalAttempts": 0})
        assert storage.load("vocab_master_stats_a+b@x.com") == VALUE
        assert len(list(tmp_path.iterdir())) == 2

    def test_corrupt_file_loads_as_missing(self, tmp_path):
        storage = JsonFileStatsStorage(str(tmp_path))
        storage.save(KEY, VALUE)
        path = next(tmp_path.iterdir())
        path.write_text("{not json")
        assert storage.load(KEY) is None

    def test_delete(self, tmp_path):
        storage = JsonFileStatsStorage(str(tmp_path))
        storage.save(KEY, VALUE)
        storage.delete(KEY)
        storage.delete(KEY)
        assert storage.load(KEY) is None


class TestPostgresStorage:
    """SQL issued against a mocked psycopg2 connection"""

    @pytest.fixture
    def cursor(self):
        with mock.patch("stats_storage.psycopg2.connect") as connect:
            cursor = connect.return_value.cursor.return_value
            yield cursor

    def test_connect_creates_table(self, cursor):
        with PostgresStatsStorage("postgresql://test") as storage:
            assert storage.conn.autocommit is True
        sql = cursor.execute.call_args_list[0][0][0]
        assert "CREATE TABLE IF NOT EXISTS user_stats" in sql

    def test_save_upserts(self, cursor):
        storage = PostgresStatsStorage("postgresql://test")
        storage.save(KEY, VALUE)
        sql, params = cursor.execute.call_args_list[-1][0]
        assert "ON CONFLICT (key) DO UPDATE" in sql
        assert params[0] == KEY
        assert params[1].adapted == VALUE

    def test_load_returns_value(self, cursor):
        cursor.fetchone.return_value = {"value": VALUE}
        storage = PostgresStatsStorage("postgresql://test")
        assert storage.load(KEY) == VALUE

    def test_load_missing(self, cursor):
        cursor.fetchone.return_value = None
        storage = PostgresStatsStorage("postgresql://test")
        assert storage.load(KEY) is None

    def test_delete(self, cursor):
        storage = PostgresStatsStorage("postgresql://test")
        storage.delete(KEY)
        sql, params = cursor.execute.call_args_list[-1][0]
        assert sql.startswith("DELETE FROM user_stats")
        assert params == (KEY,)


class TestCreateStorage:
    def test_memory_backend(self):
        assert isinstance(create_storage("memory"), InMemoryStatsStorage)

    def test_postgres_backend_connects_lazily(self):
        with mock.patch("stats_storage.psycopg2.connect") as connect:
            storage = create_storage("postgres")
            assert isinstance(storage, PostgresStatsStorage)
            connect.assert_not_called()

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_storage("redis")
