from fastapi import APIRouter, Depends, HTTPException

from apptracker.dependencies import get_store
from apptracker.schemas.application import (
    ApplicationCreate,
    ApplicationFull,
    ApplicationResponse,
    ApplicationUpdate,
)
from apptracker.store import Store

router = APIRouter(prefix="/applications", tags=["applications"])


@router.post("", status_code=201)
async def create_application(req: ApplicationCreate, store: Store = Depends(get_store)):
    return await store.create_application(req)


@router.get("", response_model=list[ApplicationResponse])
async def list_applications(store: Store = Depends(get_store)):
    return await store.list_applications()


@router.get("/{application_id}", response_model=ApplicationFull)
async def get_application(application_id: int, store: Store = Depends(get_store)):
    full = await store.get_application_full(application_id)
    if full is None:
        raise HTTPException(status_code=404, detail="Application not found")
    return full


@router.put("/{application_id}")
async def update_application(
    application_id: int, req: ApplicationUpdate, store: Store = Depends(get_store)
):
    return await store.update_application(application_id, req)


@router.delete("/{application_id}")
async def delete_application(application_id: int, store: Store = Depends(get_store)):
    return await store.delete_application(application_id)
