from functools import lru_cache
from sqlalchemy.orm import declarative_base
from supabase import create_client, Client
from app.config import settings
import logging

logger = logging.getLogger(__name__)

# Declarative base for the table definitions in app.models
Base = declarative_base()

# Supabase Client Setup
@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    """Get Supabase client for authentication operations"""
    return create_client(
        settings.supabase_url,
        settings.supabase_anon_key.get_secret_value()
    )

@lru_cache(maxsize=1)
def get_supabase_admin_client() -> Client:
    """Get Supabase admin client for table operations"""
    return create_client(
        settings.supabase_url,
        settings.supabase_service_role_key.get_secret_value()
    )

def test_supabase_connection():
    """Test Supabase connection"""
    try:
        get_supabase_admin_client().table('quiz_sessions').select('session_token').limit(1).execute()
        return True
    except Exception as e:
        logger.error(f"Supabase connection test failed: {e}")
        try:
            get_supabase_client().auth.get_session()
            return True
        except Exception as e2:
            logger.error(f"Supabase auth test also failed: {e2}")
            return False

# Database operations using Supabase REST API
class Database:
    """Database operations using Supabase REST API"""

    @staticmethod
    def insert(table: str, data: dict):
        """Insert data into table"""
        try:
            result = get_supabase_admin_client().table(table).insert(data).execute()
            return result.data[0] if result.data else None
        except Exception as e:
            logger.error(f"Insert error in {table}: {e}")
            raise

    @staticmethod
    def select(table: str, columns: str = "*", filters: dict = None, limit: int = None):
        """Select data from table"""
        try:
            query = get_supabase_admin_client().table(table).select(columns)

            if filters:
                for key, value in filters.items():
                    query = query.eq(key, value)

            if limit:
                query = query.limit(limit)

            result = query.execute()
            return result.data
        except Exception as e:
            logger.error(f"Select error in {table}: {e}")
            raise

    @staticmethod
    def update(table: str, data: dict, filters: dict):
        """Update rows matching every filter; returns the first updated row or None"""
        try:
            query = get_supabase_admin_client().table(table).update(data)

            for key, value in filters.items():
                query = query.eq(key, value)

            result = query.execute()
            return result.data[0] if result.data else None
        except Exception as e:
            logger.error(f"Update error in {table}: {e}")
            raise

# Global database instance
db = Database()
