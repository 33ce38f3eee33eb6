"""
Database initialization script for the road sync system.

This module provides functionality to:
- Create the database if it does not exist
- Create the road_assets and osm_sync_logs tables and indexes
- Validate that the schema is in place

Usage:
    python -m road_sync.database.db_init --init      # Create if not exists
    python -m road_sync.database.db_init --reset     # Drop sync tables and recreate
    python -m road_sync.database.db_init --validate  # Check existing schema
"""

import argparse
import logging
import os
import sys
from pathlib import Path

import psycopg2
from dotenv import load_dotenv
from psycopg2 import sql
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT


load_dotenv()
logger = logging.getLogger(__name__)

EXPECTED_TABLES = ["road_assets", "osm_sync_logs"]


class DatabaseInitializer:
    """Handles database initialization and schema management."""

    def __init__(
        self,
        host: str = None,
        port: int = None,
        database: str = None,
        user: str = None,
        password: str = None,
    ):
        """Initialize with database connection parameters."""

        self.host = host or os.getenv("DB_HOST", "localhost")
        self.port = port or int(os.getenv("DB_PORT", 5432))
        self.database = database or os.getenv("DB_NAME", "road_assets")
        self.user = user or os.getenv("DB_USER", "postgres")
        self.password = password or os.getenv("DB_PASSWORD")

        if not self.password:
            raise ValueError(
                "Database password must be provided via DB_PASSWORD env var or constructor"
            )

        self.schema_file = Path(__file__).parent / "schema.sql"

        if not self.schema_file.exists():
            raise FileNotFoundError(f"Schema file not found: {self.schema_file}")

    def get_connection(self, database: str = None) -> psycopg2.extensions.connection:
        """Get an autocommit connection."""
        conn = psycopg2.connect(
            host=self.host,
            port=self.port,
            database=database or self.database,
            user=self.user,
            password=self.password,
        )
        conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
        return conn

    def database_exists(self) -> bool:
        """Check if the target database exists."""
        try:
            conn = self.get_connection("postgres")
            cursor = conn.cursor()
            cursor.execute("SELECT 1 FROM pg_database WHERE datname = %s", (self.database,))
            exists = cursor.fetchone() is not None
            cursor.close()
            conn.close()
            return exists

        except psycopg2.Error as e:
            logger.error(f"Error checking database existence: {e}")
            return False

    def create_database(self) -> None:
        """Create the target database if it doesn't exist."""
        if self.database_exists():
            logger.info(f"Database '{self.database}' already exists")
            return

        conn = self.get_connection("postgres")
        try:
            cursor = conn.cursor()
            # Cannot use a parameterized query for the database name
            cursor.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(self.database)))
            logger.info(f"Created database '{self.database}'")
            cursor.close()
        except psycopg2.Error as e:
            logger.error(f"Error creating database: {e}")
            raise
        finally:
            conn.close()

    def drop_sync_tables(self) -> None:
        """Drop the tables created by the schema file."""
        conn = self.get_connection()
        try:
            cursor = conn.cursor()
            for table in reversed(EXPECTED_TABLES):
                cursor.execute(
                    sql.SQL("DROP TABLE IF EXISTS {} CASCADE").format(sql.Identifier(table))
                )
                logger.info(f"Dropped table: {table}")
            cursor.close()
        except psycopg2.Error as e:
            logger.error(f"Error dropping tables: {e}")
            raise
        finally:
            conn.close()

    def run_schema_file(self) -> None:
        """Execute the schema SQL file to create all objects."""
        with open(self.schema_file, encoding="utf-8") as f:
            schema_sql = f.read()

        conn = self.get_connection()
        try:
            cursor = conn.cursor()
            logger.info(f"Executing schema file: {self.schema_file}")
            cursor.execute(schema_sql)
            cursor.close()
            logger.info("Successfully created all schema objects")
        except psycopg2.Error as e:
            logger.error(f"Error executing schema file: {e}")
            raise
        finally:
            conn.close()

    def validate_schema(self) -> bool:
        """Validate that the expected tables and the PostGIS extension exist."""
        try:
            conn = self.get_connection()
            cursor = conn.cursor()

            cursor.execute("""
                SELECT table_name
                FROM information_schema.tables
                WHERE table_schema = 'public' AND table_type = 'BASE TABLE'
            """)
            existing_tables = [row[0] for row in cursor.fetchall()]

            missing_tables = set(EXPECTED_TABLES) - set(existing_tables)
            if missing_tables:
                logger.error(f"Missing tables: {missing_tables}")
                return False

            cursor.execute("SELECT 1 FROM pg_extension WHERE extname = 'postgis'")
            if not cursor.fetchone():
                logger.error("PostGIS extension not installed")
                return False

            cursor.close()
            conn.close()

            logger.info("Schema validation passed")
            return True

        except psycopg2.Error as e:
            logger.error(f"Error validating schema: {e}")
            return False

    def init_fresh_database(self) -> None:
        """Create the database and schema, then validate."""
        logger.info("Starting database initialization...")
        self.create_database()
        self.run_schema_file()

        if not self.validate_schema():
            raise RuntimeError("Schema validation failed")
        logger.info("Database initialization completed successfully")

    def reset_database(self) -> None:
        """Drop the sync tables and recreate them."""
        logger.info("Starting database reset...")
        self.create_database()
        self.drop_sync_tables()
        self.run_schema_file()

        if not self.validate_schema():
            raise RuntimeError("Schema validation failed")
        logger.info("Database reset completed successfully")


def main():
    """Command line interface for database initialization."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    parser = argparse.ArgumentParser(description="Road Sync Database Initializer")
    parser.add_argument("--reset", action="store_true", help="Drop sync tables and recreate them")
    parser.add_argument("--init", action="store_true", help="Initialize database (create if not exists)")
    parser.add_argument("--validate", action="store_true", help="Validate existing schema")

    args = parser.parse_args()

    if not any([args.reset, args.init, args.validate]):
        parser.print_help()
        sys.exit(1)

    try:
        db_init = DatabaseInitializer()

        if args.reset:
            confirm = input(
                f"Reset will drop all road assets in '{db_init.database}'. Continue? (yes/no): "
            )
            if confirm.lower() == "yes":
                db_init.reset_database()
            else:
                logger.info("Database reset cancelled")

        elif args.init:
            db_init.init_fresh_database()

        elif args.validate:
            if not db_init.validate_schema():
                logger.error("Schema validation failed")
                sys.exit(1)

    except Exception as e:
        logger.error(f"Operation failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
