from fastapi import APIRouter, Depends

from apptracker.dependencies import get_store
from apptracker.schemas.contact import ContactCreate, ContactResponse, ContactUpdate
from apptracker.store import Store

router = APIRouter(prefix="/contacts", tags=["contacts"])


@router.post("", status_code=201)
async def create_contact(req: ContactCreate, store: Store = Depends(get_store)):
    return await store.create_contact(req)


@router.get("", response_model=list[ContactResponse])
async def list_contacts(store: Store = Depends(get_store)):
    return await store.list_contacts()


@router.put("/{contact_id}")
async def update_contact(contact_id: int, req: ContactUpdate, store: Store = Depends(get_store)):
    return await store.update_contact(contact_id, req)


@router.delete("/{contact_id}")
async def delete_contact(contact_id: int, store: Store = Depends(get_store)):
    return await store.delete_contact(contact_id)
