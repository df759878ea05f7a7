"""
Unit tests for Database Connection Manager.

Tests database connection and session management:
- Connection initialization
- Session creation
- Transaction handling
"""

import pytest
from sqlalchemy import inspect, text

from mealsync.database.connection import DatabaseManager
from mealsync.database.models import DailyMealsRecord


class TestDatabaseManager:
    """Tests for DatabaseManager."""

    @pytest.fixture
    def db_manager(self):
        """Create in-memory database manager."""
        manager = DatabaseManager("sqlite:///:memory:")
        yield manager
        manager.dispose()

    def test_tables_created(self, db_manager):
        """Both source tables exist after initialization."""
        tables = set(inspect(db_manager.engine).get_table_names())
        assert {"daily_meals", "profiles"} <= tables

    def test_instances_are_independent(self):
        """Each manager owns its own in-memory database."""
        first = DatabaseManager("sqlite:///:memory:")
        second = DatabaseManager("sqlite:///:memory:")

        with first.session_scope() as session:
            record = DailyMealsRecord(id="dm_1", user_id="u1", meal_date="2026-10-17")
            record.meals = []
            session.add(record)

        with second.session_scope() as session:
            assert session.query(DailyMealsRecord).count() == 0

    def test_session_scope_commits(self, db_manager):
        with db_manager.session_scope() as session:
            record = DailyMealsRecord(id="dm_1", user_id="u1", meal_date="2026-10-17")
            record.meals = [{"name": "Oats"}]
            session.add(record)

        with db_manager.session_scope() as session:
            assert session.get(DailyMealsRecord, "dm_1").meals == [{"name": "Oats"}]

    def test_session_scope_rolls_back_on_error(self, db_manager):
        with pytest.raises(RuntimeError):
            with db_manager.session_scope() as session:
                session.add(DailyMealsRecord(id="dm_1", user_id="u1", meal_date="2026-10-17"))
                session.flush()
                raise RuntimeError("abort")

        with db_manager.session_scope() as session:
            assert session.query(DailyMealsRecord).count() == 0

    def test_sqlite_pragma_applied(self, db_manager):
        with db_manager.session_scope() as session:
            assert session.execute(text("PRAGMA foreign_keys")).scalar() == 1

    def test_reset(self, db_manager):
        with db_manager.session_scope() as session:
            session.add(DailyMealsRecord(id="dm_1", user_id="u1", meal_date="2026-10-17"))

        db_manager.reset()

        with db_manager.session_scope() as session:
            assert session.query(DailyMealsRecord).count() == 0

    def test_file_database_creates_parent_directory(self, tmp_path):
        """Test file-based database."""
        db_file = tmp_path / "nested" / "mealsync.db"
        manager = DatabaseManager(f"sqlite:///{db_file}")

        assert db_file.parent.exists()
        manager.dispose()
