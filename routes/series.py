from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from typing import Optional, Dict, Any
from dependencies import CatalogServices, get_services
from catalog.stats import fetch_statistics

router = APIRouter(prefix="/api/series", tags=["series"])

class HydrateRequest(BaseModel):
    uuid: str

@router.get("/resolve")
async def resolve_series(key: str, services: CatalogServices = Depends(get_services)) -> Dict[str, Any]:
    """Resolve a numeric id, slug or MangaDex id to the local series"""
    resolved = await services.resolver.resolve(key)
    if not resolved:
        raise HTTPException(status_code=404, detail="Series not found")
    return resolved.model_dump()

@router.post("/hydrate")
async def hydrate_series(data: HydrateRequest, services: CatalogServices = Depends(get_services)) -> Dict[str, Any]:
    """Import a MangaDex series into the local catalog (idempotent)"""
    record = await services.hydrator.hydrate(data.uuid)
    return record.model_dump()

@router.get("/slug-map")
async def slug_map(ids: str = "", hydrate: str = "0", services: CatalogServices = Depends(get_services)) -> Dict[str, Any]:
    """Map comma-separated MangaDex ids to local slugs, optionally importing unknown ones"""
    id_list = [i.strip() for i in ids.split(",") if i.strip()]
    if not id_list:
        return {"map": {}, "errors": []}
    return await services.resolver.map_external_ids(id_list, hydrate=hydrate == "1")

@router.get("/stats")
async def series_stats(ids: str = "", services: CatalogServices = Depends(get_services)) -> Dict[str, Any]:
    """Follow counts and ratings for comma-separated MangaDex ids"""
    id_list = [i.strip() for i in ids.split(",") if i.strip()]
    stats = await fetch_statistics(services.client, id_list)
    return {"statistics": {k: v.model_dump() for k, v in stats.items()}}

@router.get("/chapters")
async def list_chapters(
    id: Optional[str] = None,
    slug: Optional[str] = None,
    lang: str = "any",
    group: str = "all",
    limit: int = 100,
    byChapterId: Optional[str] = None,
    services: CatalogServices = Depends(get_services)
) -> Dict[str, Any]:
    """Ordered chapter list of a series; never fails because of upstream trouble"""
    if byChapterId:
        result = await services.feed.get_chapter(byChapterId)
    else:
        key = (id or slug or "").strip()
        result = await services.feed.list_chapters(key, language=lang, group=group, limit=limit)
    return result.model_dump()
