"""PostgreSQL connection and utilities."""

import logging
from contextlib import contextmanager

import psycopg2
from psycopg2.extras import RealDictCursor
from sqlalchemy import create_engine

from src.config import POSTGRES_CONFIG
from src.db.postgres_bootstrap import Base
from src.models import *  # Needed for Base metadata

logger = logging.getLogger(__name__)


class PostgresConnection:
    def __init__(self):
        self.config = POSTGRES_CONFIG
        self._engine = None

    @property
    def engine(self):
        if not self._engine:
            db_url = (
                f"postgresql://{self.config['user']}:{self.config['password']}@"
                f"{self.config['host']}:{self.config['port']}/{self.config['database']}"
            )
            self._engine = create_engine(db_url)
        return self._engine

    @contextmanager
    def get_cursor(self):
        """Get a database cursor for raw SQL queries."""
        conn = psycopg2.connect(**self.config)
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                yield cursor
                conn.commit()
        except Exception as e:
            conn.rollback()
            raise e
        finally:
            conn.close()

    def create_tables(self):
        """Create the product and vendor tables defined by the SQLAlchemy models.

        Views such as ``vendor_profiles_with_user`` are managed outside of this
        project; lookups against them are skipped when they are missing.
        """
        logger.log(logging.INFO, "Creating tables...")

        try:
            Base.metadata.create_all(self.engine)
            logger.log(logging.INFO, "Tables created successfully.")
        except Exception as e:
            logger.log(logging.ERROR, f"Error creating tables: {e}")
            raise e


# Singleton instance
db = PostgresConnection()
