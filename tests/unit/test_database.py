"""
Unit tests for the Supabase REST wrapper
"""
import pytest
from unittest.mock import patch
from app.database import Database


class TestDatabase:
    """Test cases for Database class"""

    def test_insert_returns_first_row(self):
        """Insert returns the stored row"""
        row = {"session_token": "abc", "version": 1}

        with patch('app.database.get_supabase_admin_client') as mock_client:
            mock_client.return_value.table.return_value.insert.return_value.execute.return_value.data = [row]

            result = Database.insert("quiz_sessions", row)

            assert result == row
            mock_client.return_value.table.assert_called_with("quiz_sessions")

    def test_insert_failure_is_raised(self):
        """Storage errors propagate to the caller"""
        with patch('app.database.get_supabase_admin_client') as mock_client:
            mock_client.return_value.table.return_value.insert.return_value.execute.side_effect = Exception("Database error")

            with pytest.raises(Exception):
                Database.insert("quiz_sessions", {"session_token": "abc"})

    def test_select_with_filters_and_limit(self):
        """Each filter becomes an eq() clause"""
        rows = [{"session_token": "abc"}]

        with patch('app.database.get_supabase_admin_client') as mock_client:
            query = mock_client.return_value.table.return_value.select.return_value
            query.eq.return_value.limit.return_value.execute.return_value.data = rows

            result = Database.select("quiz_sessions", filters={"session_token": "abc"}, limit=1)

            assert result == rows
            query.eq.assert_called_once_with("session_token", "abc")

    def test_update_matches_every_filter(self):
        """Update chains one eq() per filter and returns the first row"""
        with patch('app.database.get_supabase_admin_client') as mock_client:
            query = mock_client.return_value.table.return_value.update.return_value
            query.eq.return_value.eq.return_value.execute.return_value.data = [{"version": 3}]

            result = Database.update("quiz_sessions", {"version": 3}, {"session_token": "abc", "version": 2})

            assert result == {"version": 3}
            query.eq.assert_called_once_with("session_token", "abc")
            query.eq.return_value.eq.assert_called_once_with("version", 2)

    def test_update_without_match(self):
        """No matching row gives None"""
        with patch('app.database.get_supabase_admin_client') as mock_client:
            query = mock_client.return_value.table.return_value.update.return_value
            query.eq.return_value.execute.return_value.data = []

            assert Database.update("quiz_sessions", {"version": 2}, {"session_token": "abc"}) is None
