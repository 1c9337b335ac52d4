"""
Infrastructure Setup Script for the Vendor Catalog Backend
This script checks the database connections and creates the tables.
"""

import asyncio
import logging

from src.config import MEDIA_CONFIG, RELATION_CONFIG
from src.db.mongodb_client import mongo_client
from src.db.postgres_client import db
from src.db.redis_client import redis_client

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MEDIA_BUCKETS = [
    MEDIA_CONFIG["vendor_product_bucket"],
    MEDIA_CONFIG["products_bucket"],
    MEDIA_CONFIG["vendor_profiles_bucket"],
]


async def check_database_connections():
    """Check if all database connections are working."""
    logger.info("Checking database connections...")

    # Check PostgreSQL
    try:
        with db.get_cursor() as cursor:
            cursor.execute("SELECT 1")
            result = cursor.fetchone()
            if result:
                logger.info("✅ PostgreSQL connection: OK")
            else:
                logger.error("❌ PostgreSQL connection: Failed")
                return False
    except Exception as e:
        logger.error(f"❌ PostgreSQL connection error: {e}")
        return False

    # Check Redis
    try:
        redis_client.client.ping()
        logger.info("✅ Redis connection: OK")
    except Exception as e:
        logger.error(f"❌ Redis connection error: {e}")
        return False

    # Check MongoDB
    try:
        mongo_client.client.admin.command("ping")
        logger.info("✅ MongoDB connection: OK")
    except Exception as e:
        logger.error(f"❌ MongoDB connection error: {e}")
        return False

    return True


async def check_relations():
    """Report which product and vendor relations exist."""
    logger.info("Checking relations...")

    relations = [
        *RELATION_CONFIG["product_relations_admin"],
        *RELATION_CONFIG["vendor_candidates"],
    ]
    for relation in dict.fromkeys(relations):
        try:
            with db.get_cursor() as cursor:
                cursor.execute("SELECT to_regclass(%s) AS found", (relation,))
                found = cursor.fetchone()["found"]
        except Exception as e:
            logger.error(f"Error checking {relation}: {e}")
            return False
        if found:
            logger.info(f"📦 {relation}: present")
        else:
            logger.warning(f"⚠️ {relation}: missing (lookups against it will be skipped)")

    return True


async def main():
    """Main setup function."""
    logger.info("🚀 Setting up Vendor Catalog Backend...")

    # Check database connections
    if not await check_database_connections():
        logger.error("❌ Database connection check failed!")
        return False

    db.create_tables()
    mongo_client.create_indexes(MEDIA_BUCKETS)

    if not await check_relations():
        logger.warning("⚠️ Relation check failed!")
        return False

    logger.info("✅ Setup complete! Ready to start the server.")
    return True


if __name__ == "__main__":
    asyncio.run(main())
