from fastapi import HTTPException, Header, Request
from typing import Optional
import logging

from config import CatalogSettings, load_catalog_settings
from catalog.client import MangaDexClient
from catalog.detail import ChapterDetailResolver
from catalog.feed import ChapterFeedFetcher
from catalog.hydrator import SeriesHydrator
from catalog.resolver import SeriesResolver

logger = logging.getLogger(__name__)


class CatalogServices:
    """The catalog components of one process, wired once at startup."""

    def __init__(self, settings: Optional[CatalogSettings] = None, client: Optional[MangaDexClient] = None):
        self.settings = settings or load_catalog_settings()
        self.client = client or MangaDexClient(self.settings)
        self.hydrator = SeriesHydrator(self.client)
        self.resolver = SeriesResolver(self.hydrator)
        self.feed = ChapterFeedFetcher(self.client, self.resolver)
        self.detail = ChapterDetailResolver(self.client, self.resolver, self.hydrator)


def get_services(request: Request) -> CatalogServices:
    """Dependency returning the services stored on the app at startup"""
    services = getattr(request.app.state, 'services', None)
    if services is None:
        services = CatalogServices()
        request.app.state.services = services
    return services


async def get_reader_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """Dependency to get the reader id forwarded by the auth layer in front of this service"""
    if not x_user_id or not x_user_id.strip():
        logger.warning("Reader request without X-User-Id header")
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id.strip()
