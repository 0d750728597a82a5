from fastapi import APIRouter, Depends
from typing import Optional, Dict, Any
from dependencies import CatalogServices, get_services
from catalog.slugs import encode_chapter_slug, chapter_path

router = APIRouter(prefix="/api/chapter", tags=["chapters"])

@router.get("/detail")
async def chapter_detail(
    id: Optional[str] = None,
    series: Optional[str] = None,
    chap: Optional[str] = None,
    saver: str = "0",
    services: CatalogServices = Depends(get_services)
) -> Dict[str, Any]:
    """
    Page URLs for a chapter.
    A) ?id=<mdChapterId>
    B) ?series=<seriesKey>&chap=g-<short>-chapter-<label>-<lang>
    """
    detail = await services.detail.resolve_detail(
        chapter_id=id,
        series_key=series,
        chapter_slug=chap,
        save_data=saver == "1",
    )
    response: Dict[str, Any] = {"pages": detail.pages}
    if detail.resolved_chapter_id:
        response["resolved"] = {"chapterId": detail.resolved_chapter_id}
    return response

@router.get("/slug")
async def chapter_slug(
    group: Optional[str] = None,
    chapter: Optional[str] = None,
    lang: Optional[str] = None,
    series: Optional[str] = None
) -> Dict[str, Any]:
    """Canonical slug (and reader path when a series slug is given) for a chapter row"""
    result: Dict[str, Any] = {"slug": encode_chapter_slug(group, chapter, lang)}
    if series:
        result["path"] = chapter_path(series, group, chapter, lang)
    return result
