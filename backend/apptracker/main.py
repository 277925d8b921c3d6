import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from apptracker.config import settings
from apptracker.errors import NotFoundError, StorageError, ValidationError
from apptracker.routers import activities, applications, contacts, stats, tags
from apptracker.store import open_store
from apptracker.validation import error_message

logger = logging.getLogger("apptracker")

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: open (and migrate) the store, then integrity-check it
    store = await open_store(settings.store_path, backend=settings.backend)
    result = await store.integrity_check()
    if result == "ok":
        logger.info("Database integrity check passed.")
    else:
        logger.error("DATABASE INTEGRITY CHECK FAILED: %s", result)
    if settings.seed_sample_data:
        await store.seed_sample_data()
    app.state.store = store
    yield
    # Shutdown: release the store
    app.state.store = None
    await store.close()


app = FastAPI(
    title="Application Tracker",
    description="Local job application tracker: applications, contacts and activities",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    # Only the local desktop shell talks to this API.
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Malformed bodies answer like any other rejected input.
    return JSONResponse(status_code=400, content={"detail": error_message(exc.errors())})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Storage error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": exc.message})


app.include_router(stats.router, prefix=settings.api_prefix)
app.include_router(applications.router, prefix=settings.api_prefix)
app.include_router(contacts.router, prefix=settings.api_prefix)
app.include_router(activities.router, prefix=settings.api_prefix)
app.include_router(tags.router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "version": VERSION}
