#!/usr/bin/env python3
"""
Database initialization script for the quiz session engine
Writes create_tables.sql from the table definitions in app.models and checks
the Supabase connection. Run the SQL in your Supabase SQL editor.
"""

import sys
import os

# Add the app directory to the Python path
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateIndex, CreateTable

from app.database import Base, test_supabase_connection
import app.models  # noqa: F401  registers the tables on Base.metadata

SQL_FILE = "create_tables.sql"

def generate_schema_sql() -> str:
    """PostgreSQL DDL for every table, in dependency order"""
    dialect = postgresql.dialect()
    statements = []
    for table in Base.metadata.sorted_tables:
        statements.append(str(CreateTable(table).compile(dialect=dialect)).strip() + ";")
        for index in sorted(table.indexes, key=lambda i: i.name):
            statements.append(str(CreateIndex(index).compile(dialect=dialect)).strip() + ";")
    return "\n\n".join(statements) + "\n"

def init_supabase(sql_path: str = SQL_FILE) -> bool:
    """Write the schema file and test the Supabase connection"""
    with open(sql_path, "w", encoding="utf-8") as f:
        f.write(generate_schema_sql())
    print(f"📄 SQL file created: {sql_path}")

    print("🔄 Testing Supabase connection...")
    try:
        if test_supabase_connection():
            print("✅ Supabase connection successful!")
        else:
            print("⚠️  Supabase connection test inconclusive, check SUPABASE_URL and keys")
    except Exception as e:
        print(f"❌ Error testing Supabase: {e}")
        return False

    print("\n📋 Tables:")
    for table in Base.metadata.sorted_tables:
        print(f"  - {table.name}")
    print("\nRun the SQL in your Supabase dashboard to create the schema.")
    return True

if __name__ == "__main__":
    success = init_supabase()
    sys.exit(0 if success else 1)
