from fastapi import APIRouter, Depends

from apptracker.dependencies import get_store
from apptracker.schemas.tag import TagResponse
from apptracker.store import Store

router = APIRouter(prefix="/tags", tags=["tags"])


@router.get("", response_model=list[TagResponse])
async def list_tags(store: Store = Depends(get_store)):
    return await store.list_tags()
