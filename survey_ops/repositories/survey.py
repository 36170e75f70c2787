"""Survey store operations following platform patterns."""

from typing import Any, Dict, List, Optional

from loguru import logger
from survey_processing.heatmap import AggregateStat

from ..config_loader import Config
from ..migration import MigrationProgress
from ..supabase_integration import StoreError, SupabaseDatabase


class SurveyStore:
    """
    The named store operations the survey pipeline depends on.

    Each operation is one table call or one server-side function call and is
    treated as atomic; failures are logged and raised as StoreError.

    Example:
        db = SupabaseDatabase(config)
        store = SurveyStore(db, config)
        progress = store.get_migration_progress()
    """

    def __init__(self, db: SupabaseDatabase, config: Optional[Config] = None):
        """Initialize the survey store.

        Args:
            db: SupabaseDatabase instance for executing calls
            config: Config providing table and function names
        """
        self.db = db
        self.config = config or db.config
        self.responses_table = self.config.get_table_name("survey_responses")

    def _call(self, rpc_key: str, params: Optional[Dict[str, Any]] = None) -> Any:
        function = self.config.get_rpc_name(rpc_key)
        try:
            return self.db.rpc(function, params)
        except Exception as e:
            raise StoreError(f"{function}() failed: {e}") from e

    def clear_destination(self) -> None:
        """Empty the normalized migration table."""
        self._call("clear_destination")
        logger.debug("   🧹 Normalized table cleared")

    def get_migration_progress(self) -> MigrationProgress:
        data = self._call("migration_progress")
        try:
            return MigrationProgress.from_response(data)
        except (ValueError, AttributeError) as e:
            raise StoreError(f"Unexpected migration progress payload: {data!r}") from e

    def migrate_batch(self, batch_size: int, offset: int) -> Any:
        """Run one hybrid migration batch; returns the store's result message."""
        return self._call("migrate_batch", {"p_batch_size": batch_size, "p_offset": offset})

    def upload_records(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Insert one chunk of survey_responses rows."""
        try:
            return self.db.insert(self.responses_table, rows)
        except Exception as e:
            raise StoreError(f"Insert into {self.responses_table} failed: {e}") from e

    def get_aggregate_stats(self, category_filter: Optional[str] = None) -> List[AggregateStat]:
        """Per-barrio statistics, optionally restricted to one response category."""
        data = self._call("aggregate_stats", {"category_filter": category_filter})
        stats = [AggregateStat.from_row(row) for row in (data or [])]
        logger.debug(f"   📊 Loaded {len(stats)} barrio stats (filter: {category_filter})")
        return stats

    def get_available_categories(self) -> List[str]:
        data = self._call("available_categories") or []
        categories = []
        for item in data:
            name = item.get("category") if isinstance(item, dict) else item
            if name:
                categories.append(str(name))
        return categories


def get_survey_store(config: Optional[Config] = None) -> SurveyStore:
    """
    Build a SurveyStore with its own database client.

    The caller owns the returned handle.
    """
    config = config or Config()
    return SurveyStore(SupabaseDatabase(config), config)
