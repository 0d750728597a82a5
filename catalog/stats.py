import asyncio
import logging
from typing import Dict, List, Sequence

from catalog.client import MangaDexClient
from catalog.errors import UpstreamError
from catalog.models import SeriesStats
from catalog.slugs import is_uuid

logger = logging.getLogger(__name__)

STATS_CHUNK_SIZE = 80


def chunked(items: Sequence[str], size: int) -> List[List[str]]:
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


async def fetch_statistics(client: MangaDexClient, manga_ids: Sequence[str]) -> Dict[str, SeriesStats]:
    """Follows and rating for many series, fetched in parallel waves of chunks.

    A chunk that fails is logged and left out of the result.
    """
    unique = list(dict.fromkeys(m.lower() for m in manga_ids if is_uuid(m)))
    chunks = chunked(unique, STATS_CHUNK_SIZE)
    width = max(1, client.settings.fanout_width)
    out: Dict[str, SeriesStats] = {}

    for i in range(0, len(chunks), width):
        wave = chunks[i:i + width]
        results = await asyncio.gather(*(client.get_statistics(c) for c in wave), return_exceptions=True)
        for chunk, result in zip(wave, results):
            if isinstance(result, UpstreamError):
                logger.warning(f"Statistics chunk of {len(chunk)} ids failed: {result.message}")
                continue
            if isinstance(result, BaseException):
                raise result
            for manga_id, entry in result.items():
                rating = 0.0
                if entry.rating is not None:
                    if entry.rating.bayesian is not None:
                        rating = entry.rating.bayesian
                    elif entry.rating.average is not None:
                        rating = entry.rating.average
                out[manga_id.lower()] = SeriesStats(follows=entry.follows or 0, rating=rating)
    return out
