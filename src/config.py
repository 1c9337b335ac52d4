"""Configuration for the vendor catalog backend, read from the environment."""

import os

from dotenv import load_dotenv

load_dotenv()

POSTGRES_CONFIG = {
    "host": os.getenv("POSTGRES_HOST", "localhost"),
    "port": int(os.getenv("POSTGRES_PORT", "5432")),
    "database": os.getenv("POSTGRES_DB", "vendor_catalog"),
    "user": os.getenv("POSTGRES_USER", "postgres"),
    "password": os.getenv("POSTGRES_PASSWORD", "postgres"),
}

REDIS_CONFIG = {
    "host": os.getenv("REDIS_HOST", "localhost"),
    "port": int(os.getenv("REDIS_PORT", "6379")),
    "db": int(os.getenv("REDIS_DB", "0")),
}

MONGO_CONFIG = {
    "uri": os.getenv("MONGO_URI", "mongodb://localhost:27017"),
    "database": os.getenv("MONGO_DB", "vendor_catalog_media"),
}

# Fixed-window limit for mutating product routes, per actor and endpoint
RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "60"))
RATE_LIMIT_WINDOW = int(os.getenv("RATE_LIMIT_WINDOW", "60"))  # seconds

AUTH_CONFIG = {
    "jwt_secret": os.getenv("SUPABASE_JWT_SECRET", ""),
    "audience": os.getenv("JWT_AUDIENCE", "authenticated"),
    "algorithms": ["HS256"],
}

MEDIA_CONFIG = {
    "public_base_url": os.getenv("MEDIA_PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
    "vendor_product_bucket": "vendor-product-bucket",
    "products_bucket": "products",
    "vendor_profiles_bucket": "vendor-profiles-bucket",
    "max_thumbnails": 5,
}

# Candidate relations, in precedence order. Earlier entries win.
RELATION_CONFIG = {
    "vendor_candidates": ["vendor", "vendors", "vendor_profiles", "vendor_profiles_with_user"],
    "vendor_user_candidates": ["vendor", "vendors", "vendor_profiles_with_user", "vendor_profiles"],
    "vendor_view_candidates": ["vendor_profiles_with_user", "vendor_profiles", "vendor", "vendors"],
    "product_relations_vendor": ["vendor_product", "products"],
    "product_relations_admin": ["products", "vendor_product"],
    "primary_product_relation": "products",
    "fallback_product_relation": "vendor_product",
    "vendor_profiles": "vendor_profiles",
}

WRITE_MAX_ATTEMPTS = int(os.getenv("WRITE_MAX_ATTEMPTS", "6"))
SEARCH_PAGE_LIMIT = int(os.getenv("SEARCH_PAGE_LIMIT", "300"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
