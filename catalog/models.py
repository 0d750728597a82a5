"""Typed shapes for the catalog core.

The ``MD*`` models are the parsing boundary for upstream JSON: payloads are
validated here once and anything that does not fit is reported as
``UpstreamUnavailable`` instead of leaking half-empty dicts downstream.
"""

import logging
from typing import Optional, List, Dict, Any, Type, TypeVar

from pydantic import BaseModel, ValidationError, field_validator

from catalog.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

TITLE_LANG_PREFERENCE = ('en', 'ja-ro', 'ja', 'ko', 'zh-hk', 'zh')
ONESHOT_LABEL = 'Oneshot'

T = TypeVar('T', bound=BaseModel)


# --- Upstream payloads ---

class MDRelationship(BaseModel):
    id: str
    type: str
    attributes: Optional[Dict[str, Any]] = None


class MDChapterAttributes(BaseModel):
    chapter: Optional[str] = None
    title: Optional[str] = None
    pages: Optional[int] = None
    translatedLanguage: Optional[str] = None
    readableAt: Optional[str] = None
    publishAt: Optional[str] = None
    createdAt: Optional[str] = None

    @field_validator('chapter', mode='before')
    @classmethod
    def chapter_as_text(cls, v):
        # Labels are free text upstream but occasionally arrive as numbers
        if v is None or isinstance(v, str):
            return v
        return str(v)


class MDChapter(BaseModel):
    id: str
    attributes: MDChapterAttributes
    relationships: List[MDRelationship] = []

    @property
    def group_id(self) -> Optional[str]:
        for rel in self.relationships:
            if rel.type == 'scanlation_group':
                return rel.id
        return None

    @property
    def best_timestamp(self) -> Optional[str]:
        a = self.attributes
        return a.readableAt or a.publishAt or a.createdAt or None

    @property
    def lang(self) -> str:
        return (self.attributes.translatedLanguage or '').lower()


class MDChapterList(BaseModel):
    data: List[MDChapter] = []
    total: Optional[int] = None


class MDChapterEntity(BaseModel):
    data: MDChapter


class MDMangaAttributes(BaseModel):
    title: Dict[str, Optional[str]] = {}
    altTitles: List[Dict[str, Optional[str]]] = []


class MDManga(BaseModel):
    id: str
    attributes: MDMangaAttributes = MDMangaAttributes()
    relationships: List[MDRelationship] = []

    def pick_title(self) -> str:
        for localized in [self.attributes.title, *self.attributes.altTitles]:
            if not localized:
                continue
            for key in TITLE_LANG_PREFERENCE:
                if localized.get(key):
                    return localized[key]
            for value in localized.values():
                if value:
                    return str(value)
        return 'Untitled'

    def cover_file(self) -> Optional[str]:
        for rel in self.relationships:
            if rel.type == 'cover_art' and rel.attributes and rel.attributes.get('fileName'):
                return rel.attributes['fileName']
        return None


class MDMangaEntity(BaseModel):
    data: MDManga


class MDMangaList(BaseModel):
    data: List[MDManga] = []


class MDGroupAttributes(BaseModel):
    name: Optional[str] = None


class MDGroup(BaseModel):
    id: str
    attributes: MDGroupAttributes = MDGroupAttributes()


class MDGroupList(BaseModel):
    data: List[MDGroup] = []


class MDGroupEntity(BaseModel):
    data: MDGroup


class MDAtHomeChapter(BaseModel):
    hash: str
    data: List[str] = []
    dataSaver: List[str] = []


class MDAtHome(BaseModel):
    baseUrl: str
    chapter: MDAtHomeChapter


class MDRating(BaseModel):
    average: Optional[float] = None
    bayesian: Optional[float] = None


class MDStatisticsEntry(BaseModel):
    follows: Optional[int] = None
    rating: Optional[MDRating] = None


class MDStatistics(BaseModel):
    statistics: Dict[str, MDStatisticsEntry] = {}


def parse_upstream(model: Type[T], payload: Any, what: str = '') -> T:
    """Validate an upstream payload, failing fast on shape mismatches."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Upstream payload did not match {model.__name__} ({what}): {e.error_count()} errors")
        raise UpstreamUnavailable(f"Malformed upstream payload for {what or model.__name__}", detail=str(e)) from e


# --- Domain shapes ---

class SeriesMeta(BaseModel):
    id: str
    title: str
    cover_url: Optional[str] = None


class ResolvedSeries(BaseModel):
    id: int
    slug: str
    external_id: Optional[str] = None


class ChapterRow(BaseModel):
    id: str
    chapter: str = ONESHOT_LABEL
    title: str = ''
    pages: int = 0
    publish_at: Optional[str] = None
    lang: str = ''
    group_id: Optional[str] = None
    group_short: str = 'unknown'
    group_name: Optional[str] = None
    canonical_slug: str = ''


class ChapterList(BaseModel):
    items: List[ChapterRow] = []
    available_langs: List[str] = []


class DecodedSlug(BaseModel):
    group_short: str
    label: str
    lang: str


class ChapterDetail(BaseModel):
    pages: List[str] = []
    resolved_chapter_id: Optional[str] = None


class SeriesStats(BaseModel):
    follows: int = 0
    rating: float = 0.0
