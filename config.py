import os
import logging
from dotenv import load_dotenv
from pydantic import BaseModel

# Load environment variables from .env file
load_dotenv()

# --- CONFIGURATION ---
# Use environment variables with defaults
DB_PATH = os.environ.get("MAKARON_DB_PATH", "makaron.db")

# Logging
LOG_LEVEL_STR = os.environ.get("MAKARON_LOG_LEVEL", "INFO").upper()
LOG_LEVEL = getattr(logging, LOG_LEVEL_STR, logging.INFO)
LOG_FILE = os.environ.get("MAKARON_LOG_FILE", "makaron.log")

MAKARON_ENV = os.environ.get("MAKARON_ENV", "development").lower()

# Upstream catalog
MANGADEX_API_URL = os.environ.get("MAKARON_MANGADEX_API_URL", "https://api.mangadex.org").rstrip("/")
MANGADEX_UPLOADS_URL = os.environ.get("MAKARON_MANGADEX_UPLOADS_URL", "https://uploads.mangadex.org").rstrip("/")
MANGADEX_SITE_URL = os.environ.get("MAKARON_MANGADEX_SITE_URL", "https://mangadex.org").rstrip("/")
USER_AGENT = os.environ.get("MAKARON_USER_AGENT", "MakaronComiks/1.0 (+https://makaroncomiks)")

UPSTREAM_TIMEOUT = float(os.environ.get("MAKARON_UPSTREAM_TIMEOUT", "8"))
UPSTREAM_RETRIES = int(os.environ.get("MAKARON_UPSTREAM_RETRIES", "2"))
UPSTREAM_BACKOFF = float(os.environ.get("MAKARON_UPSTREAM_BACKOFF", "1.0"))

FEED_MAX_PAGES = int(os.environ.get("MAKARON_FEED_MAX_PAGES", "10"))
GROUP_BATCH_SIZE = int(os.environ.get("MAKARON_GROUP_BATCH_SIZE", "90"))
FANOUT_WIDTH = int(os.environ.get("MAKARON_FANOUT_WIDTH", "8"))

# Source keys known to the sources table
CATALOG_SOURCE_KEY = "mangadex"
LOCAL_SOURCE_KEY = "local"

# Production guard: refuse to talk to the catalog over plain http
if MAKARON_ENV == "production" and not MANGADEX_API_URL.startswith("https://"):
    raise RuntimeError(
        "FATAL: Running in production mode but MAKARON_MANGADEX_API_URL is not an https URL.\n"
        f"Got: {MANGADEX_API_URL}"
    )


class CatalogSettings(BaseModel):
    """Per-process settings handed to every catalog component at construction."""
    api_url: str = MANGADEX_API_URL
    uploads_url: str = MANGADEX_UPLOADS_URL
    site_url: str = MANGADEX_SITE_URL
    user_agent: str = USER_AGENT
    timeout: float = UPSTREAM_TIMEOUT
    retries: int = UPSTREAM_RETRIES
    backoff: float = UPSTREAM_BACKOFF
    feed_max_pages: int = FEED_MAX_PAGES
    group_batch_size: int = GROUP_BATCH_SIZE
    fanout_width: int = FANOUT_WIDTH
    source_key: str = CATALOG_SOURCE_KEY


def load_catalog_settings() -> CatalogSettings:
    """Build catalog settings from the environment loaded at process start."""
    return CatalogSettings()
