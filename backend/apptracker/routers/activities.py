from fastapi import APIRouter, Depends

from apptracker.dependencies import get_store
from apptracker.schemas.activity import ActivityCreate, ActivityResponse, ActivityUpdate
from apptracker.store import Store

router = APIRouter(prefix="/activities", tags=["activities"])


@router.post("", status_code=201)
async def create_activity(req: ActivityCreate, store: Store = Depends(get_store)):
    return await store.create_activity(req)


@router.get("", response_model=list[ActivityResponse])
async def list_activities(store: Store = Depends(get_store)):
    return await store.list_activities()


@router.put("/{activity_id}")
async def update_activity(
    activity_id: int, req: ActivityUpdate, store: Store = Depends(get_store)
):
    return await store.update_activity(activity_id, req)


@router.delete("/{activity_id}")
async def delete_activity(activity_id: int, store: Store = Depends(get_store)):
    return await store.delete_activity(activity_id)
