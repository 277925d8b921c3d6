from fastapi import HTTPException, Request

from apptracker.store import Store


async def get_store(request: Request) -> Store:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Store is not open")
    return store
