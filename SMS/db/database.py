"""
Database Configuration and Connection Management
MySQL connection pool and the society_records table behind MySQLRecordStore.

Every collection (flats, bills, payments, ...) is stored as ordered JSON rows
keyed by collection name, so a whole collection can be read or replaced in
one statement pair.
"""

import json
import logging
import os
from contextlib import contextmanager
from typing import Any, Dict, List

from mysql.connector import pooling, Error

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

RECORDS_TABLE_DDL = """
    CREATE TABLE IF NOT EXISTS society_records (
        collection VARCHAR(64) NOT NULL,
        position INT NOT NULL,
        payload JSON NOT NULL,
        PRIMARY KEY (collection, position)
    )
"""

class DatabaseConfig:
    """Connection settings read from DB_* environment variables"""

    def __init__(self):
        self.config = {
            'host': os.getenv('DB_HOST', 'localhost'),
            'port': int(os.getenv('DB_PORT', 3306)),
            'database': os.getenv('DB_NAME', 'society_db'),
            'user': os.getenv('DB_USER', 'root'),
            'password': os.getenv('DB_PASSWORD', ''),
            'charset': 'utf8mb4',
            'collation': 'utf8mb4_unicode_ci',
            'autocommit': False,
        }
        self.pool_size = int(os.getenv('DB_POOL_SIZE', 5))
        # Created on first use so importing the app never needs a live server
        self._pool = None

    def get_connection(self):
        if self._pool is None:
            try:
                self._pool = pooling.MySQLConnectionPool(
                    pool_name='society_pool', pool_size=self.pool_size, pool_reset_session=True, **self.config
                )
                logger.info(f"Connection pool ready for {self.config['host']}/{self.config['database']}")
            except Error as e:
                logger.error(f"Error creating connection pool: {e}")
                raise
        return self._pool.get_connection()

    def test_connection(self) -> bool:
        """True when the server answers a trivial query"""
        try:
            conn = self.get_connection()
        except Error as e:
            logger.error(f"Database connection test failed: {e}")
            return False
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT 1")
            ok = cursor.fetchone()[0] == 1
            cursor.close()
            return ok
        except Error as e:
            logger.error(f"Database connection test failed: {e}")
            return False
        finally:
            conn.close()

class DatabaseManager:
    """Reads and replaces record collections"""

    def __init__(self, db_config: DatabaseConfig = None):
        self.db_config = db_config or DatabaseConfig()

    @contextmanager
    def get_transaction(self):
        """Connection with an open transaction; committed on exit, rolled back on error"""
        connection = self.db_config.get_connection()
        try:
            connection.start_transaction()
            yield connection
            connection.commit()
        except Error as e:
            connection.rollback()
            logger.error(f"Transaction error: {e}")
            raise
        finally:
            if connection.is_connected():
                connection.close()

    def ensure_schema(self):
        with self.get_transaction() as connection:
            cursor = connection.cursor()
            try:
                cursor.execute(RECORDS_TABLE_DDL)
            finally:
                cursor.close()
        logger.info("Record table ready")

    def read_collection(self, collection: str) -> List[Dict[str, Any]]:
        """Rows of one collection in stored order"""
        connection = self.db_config.get_connection()
        try:
            cursor = connection.cursor(dictionary=True)
            try:
                cursor.execute(
                    "SELECT payload FROM society_records WHERE collection = %s ORDER BY position",
                    (collection,)
                )
                rows = cursor.fetchall()
            finally:
                cursor.close()
        finally:
            connection.close()

        return [
            json.loads(row['payload']) if isinstance(row['payload'], (str, bytes)) else row['payload']
            for row in rows
        ]

    def replace_collections(self, changes: Dict[str, List[Dict[str, Any]]]):
        """Replace several collections in a single MySQL transaction"""
        with self.get_transaction() as connection:
            cursor = connection.cursor()
            try:
                for name, rows in changes.items():
                    cursor.execute("DELETE FROM society_records WHERE collection = %s", (name,))
                    if rows:
                        cursor.executemany(
                            "INSERT INTO society_records (collection, position, payload) VALUES (%s, %s, %s)",
                            [(name, position, json.dumps(row, default=str)) for position, row in enumerate(rows)]
                        )
            finally:
                cursor.close()

# Global database manager instance
db_manager = DatabaseManager()
