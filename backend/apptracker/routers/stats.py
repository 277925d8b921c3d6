from fastapi import APIRouter, Depends

from apptracker.dependencies import get_store
from apptracker.schemas.stats import Stats
from apptracker.store import Store

router = APIRouter(tags=["stats"])


@router.get("/stats", response_model=Stats)
async def get_stats(store: Store = Depends(get_store)):
    return await store.get_stats()


@router.get("/statuses", response_model=list[str])
async def get_allowed_statuses(store: Store = Depends(get_store)):
    return await store.get_allowed_statuses()


@router.get("/export/json")
async def export_json(store: Store = Depends(get_store)):
    return await store.export_document()
