from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Optional, Dict, Any, Union
from dependencies import CatalogServices, get_services, get_reader_id
from catalog.progress import save_progress, get_progress, get_last_read

router = APIRouter(prefix="/api/reading", tags=["reading"])

class ReadingProgressUpdate(BaseModel):
    series_id: Union[str, int]
    chapter_id: Optional[str] = None
    chapter: Optional[str] = None
    force: bool = False

@router.get("")
async def read_progress(reader_id: str = Depends(get_reader_id)) -> Dict[str, Any]:
    """Reading progress of the current reader keyed by numeric series id"""
    return {"progress": get_progress(reader_id)}

@router.get("/last")
async def last_read(
    series: str = "",
    reader_id: str = Depends(get_reader_id),
    services: CatalogServices = Depends(get_services)
) -> Dict[str, Any]:
    """Last-read chapter of one series, by numeric id, slug or MangaDex id"""
    return await get_last_read(services.resolver, reader_id, series)

@router.post("")
async def write_progress(
    data: ReadingProgressUpdate,
    reader_id: str = Depends(get_reader_id),
    services: CatalogServices = Depends(get_services)
) -> Dict[str, Any]:
    """Save progress; forward-only unless force is set"""
    return await save_progress(
        services.resolver,
        reader_id,
        str(data.series_id),
        chapter_id=data.chapter_id,
        chapter_label=data.chapter,
        force=data.force,
    )
