"""Tests for the key-value stores.

PostgreSQL interactions are mocked; no database is needed.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from supplierlens.store import InMemoryStore, PostgresStore

# =========================================================================
# InMemoryStore
# =========================================================================


class TestInMemoryStore:
    """Tests for the dict-backed store."""

    def test_set_and_get(self, store):
        store.set("business:b1", {"id": "b1"})
        assert store.get("business:b1") == {"id": "b1"}

    def test_missing_key(self, store):
        assert store.get("nope") is None

    def test_values_are_copies(self, store):
        value = {"tags": ["a"]}
        store.set("k", value)
        value["tags"].append("b")
        assert store.get("k") == {"tags": ["a"]}

    def test_expiry(self, store, clock):
        store.set("k", 1, ttl_seconds=60)
        clock.advance(59)
        assert store.get("k") == 1
        clock.advance(1)
        assert store.get("k") is None

    def test_keys_by_prefix_skips_expired(self, store, clock):
        store.set("priority:score:a", 1)
        store.set("priority:score:b", 2, ttl_seconds=10)
        store.set("quality:score:a", 3)
        clock.advance(11)
        assert store.keys("priority:score:") == ["priority:score:a"]

    def test_delete_counts_removed(self, store):
        store.set("a", 1)
        store.set("b", 2)
        assert store.delete("a", "b", "c") == 2
        assert store.get("a") is None

    def test_default_clock(self):
        plain = InMemoryStore()
        plain.set("k", "v", ttl_seconds=3600)
        assert plain.get("k") == "v"


# =========================================================================
# PostgresStore
# =========================================================================


class TestPostgresStore:
    """Tests for the kv_store-backed store."""

    def test_get_returns_value(self):
        conn = MagicMock()
        with patch(
            "supplierlens.store.execute_query",
            return_value=[{"value": {"id": "b1"}}],
        ):
            assert PostgresStore(conn).get("business:b1") == {"id": "b1"}

    def test_get_decodes_text_payload(self):
        conn = MagicMock()
        with patch(
            "supplierlens.store.execute_query",
            return_value=[{"value": '{"id": "b1"}'}],
        ):
            assert PostgresStore(conn).get("business:b1") == {"id": "b1"}

    def test_get_missing(self):
        conn = MagicMock()
        with patch("supplierlens.store.execute_query", return_value=[]):
            assert PostgresStore(conn).get("business:b1") is None

    def test_set_passes_json_and_ttl(self):
        conn = MagicMock()
        with patch("supplierlens.store.execute_query", return_value=[]) as mock_exec:
            PostgresStore(conn).set("priority:score:b1", {"tier": "gold"}, ttl_seconds=60)
        params = mock_exec.call_args[0][2]
        assert params == ("priority:score:b1", '{"tier": "gold"}', 60, 60)

    def test_delete_counts_returned_rows(self):
        conn = MagicMock()
        with patch(
            "supplierlens.store.execute_query",
            return_value=[{"key": "a"}, {"key": "b"}],
        ) as mock_exec:
            assert PostgresStore(conn).delete("a", "b", "c") == 2
        assert mock_exec.call_args[0][2] == (["a", "b", "c"],)

    def test_delete_nothing_skips_query(self):
        conn = MagicMock()
        with patch("supplierlens.store.execute_query") as mock_exec:
            assert PostgresStore(conn).delete() == 0
        mock_exec.assert_not_called()

    def test_keys(self):
        conn = MagicMock()
        with patch(
            "supplierlens.store.execute_query",
            return_value=[{"key": "priority:score:a"}],
        ):
            assert PostgresStore(conn).keys("priority:score:") == ["priority:score:a"]

    def test_ensure_schema_creates_table(self):
        conn = MagicMock()
        with patch("supplierlens.store.execute_query", return_value=[]) as mock_exec:
            PostgresStore(conn).ensure_schema()
        assert "CREATE TABLE IF NOT EXISTS kv_store" in mock_exec.call_args[0][1]

    def test_purge_expired_counts_deleted_rows(self):
        conn = MagicMock()
        with patch(
            "supplierlens.store.execute_query",
            return_value=[{"key": "duplicate:a:b"}],
        ) as mock_exec:
            assert PostgresStore(conn).purge_expired() == 1
        assert "expires_at <= now()" in mock_exec.call_args[0][1]
