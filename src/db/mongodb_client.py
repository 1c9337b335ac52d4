"""MongoDB connection and utilities."""

from gridfs import GridFSBucket
from pymongo import MongoClient
from pymongo.database import Database

from src.config import MONGO_CONFIG


class MongoDBClient:
    def __init__(self):
        self.client = MongoClient(MONGO_CONFIG["uri"])
        self.db: Database = self.client[MONGO_CONFIG["database"]]

    def get_bucket(self, name: str) -> GridFSBucket:
        """Get a GridFS bucket. Each storage bucket maps to its own GridFS prefix."""
        return GridFSBucket(self.db, bucket_name=name)

    def create_indexes(self, bucket_names: list[str]):
        """Create filename indexes used by media lookups and removals."""
        for name in bucket_names:
            self.db.get_collection(f"{name}.files").create_index("filename")


# Singleton instance
mongo_client = MongoDBClient()
