"""
Tests for the Supabase-backed store operations.

The database client is replaced with a MagicMock; these tests check which
table or function each store operation reaches and how failures surface.
"""

from unittest.mock import MagicMock

import pytest

from survey_ops.migration import MigrationProgress
from survey_ops.repositories import SurveyStore
from survey_ops.supabase_integration import StoreError, SupabaseDatabase
from survey_processing.heatmap import AggregateStat


@pytest.fixture
def db():
    return MagicMock(spec=SupabaseDatabase)


@pytest.fixture
def store(db, config):
    return SurveyStore(db, config)


class TestSurveyStore:
    def test_clear_destination(self, store, db):
        store.clear_destination()
        db.rpc.assert_called_once_with("clear_normalized_table", None)

    def test_migrate_batch_parameters(self, store, db):
        db.rpc.return_value = "✅ Lote completado: 50 registros procesados"
        result = store.migrate_batch(50, 100)
        db.rpc.assert_called_once_with(
            "migrate_batch_to_normalized_hybrid", {"p_batch_size": 50, "p_offset": 100}
        )
        assert result == "✅ Lote completado: 50 registros procesados"

    def test_migration_progress(self, store, db):
        db.rpc.return_value = {
            "migration_stats": {
                "total_persons_to_process": 120,
                "processed_persons": 50,
                "progress_percentage": 41.67,
                "estimated_remaining_batches": 2,
            },
            "next_offset": 50,
        }
        progress = store.get_migration_progress()
        assert isinstance(progress, MigrationProgress)
        assert progress.total_persons_to_process == 120
        assert progress.next_offset == 50
        db.rpc.assert_called_once_with("get_migration_stats", None)

    def test_migration_progress_bad_payload(self, store, db):
        db.rpc.return_value = None
        with pytest.raises(StoreError):
            store.get_migration_progress()

    def test_rpc_failure_becomes_store_error(self, store, db):
        db.rpc.side_effect = RuntimeError("JWT expired")
        with pytest.raises(StoreError) as excinfo:
            store.clear_destination()
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    def test_upload_records(self, store, db):
        rows = [{"id": "row_1_0"}]
        store.upload_records(rows)
        db.insert.assert_called_once_with("survey_responses", rows)

    def test_upload_failure(self, store, db):
        db.insert.side_effect = RuntimeError("duplicate key")
        with pytest.raises(StoreError):
            store.upload_records([{"id": "row_1_0"}])

    def test_aggregate_stats(self, store, db):
        db.rpc.return_value = [
            {"barrio": "Boston", "localidad": "Riomar", "coordx": -74.81, "coordy": 11.01,
             "total_encuestas": 3, "matches_count": 1, "match_percentage": 33.3,
             "intensity_score": 10},
        ]
        stats = store.get_aggregate_stats("SALUD")
        db.rpc.assert_called_once_with("get_heatmap_data", {"category_filter": "SALUD"})
        assert stats == [AggregateStat.from_row(db.rpc.return_value[0])]

    def test_aggregate_stats_empty(self, store, db):
        db.rpc.return_value = None
        assert store.get_aggregate_stats() == []

    def test_available_categories(self, store, db):
        db.rpc.return_value = [{"category": "SALUD"}, "EDUCACIÓN", {"category": None}]
        assert store.get_available_categories() == ["SALUD", "EDUCACIÓN"]


class TestSupabaseDatabase:
    def test_missing_credentials(self, config, monkeypatch):
        for name in (
            "SUPABASE_URL",
            "SERVICE_URL_SUPABASE",
            "SUPABASE_SERVICE_ROLE_KEY",
            "API_KEY_SUPABASE_SERVICE",
        ):
            monkeypatch.delenv(name, raising=False)
        with pytest.raises(ValueError):
            SupabaseDatabase(config)

    def test_rpc_uses_client(self, config):
        client = MagicMock()
        client.rpc.return_value.execute.return_value.data = {"ok": True}
        database = SupabaseDatabase(config, client=client)
        assert database.rpc("get_migration_stats") == {"ok": True}
        client.rpc.assert_called_once_with("get_migration_stats", {})

    def test_insert_returns_rows(self, config):
        client = MagicMock()
        client.table.return_value.insert.return_value.execute.return_value.data = [{"id": "x"}]
        database = SupabaseDatabase(config, client=client)
        assert database.insert("survey_responses", [{"id": "x"}]) == [{"id": "x"}]
        client.table.assert_called_with("survey_responses")
        client.table.return_value.insert.assert_called_once_with([{"id": "x"}])
