import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from messenger.core.config import PROJECT_NAME, settings, logger
from messenger.core.errors import MessengerError, StorageError
from messenger.db.database import get_db, init_db, ping
from messenger.routers import conversations, groups, messages, session, users


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title=PROJECT_NAME,
    description="Messaging backend: conversations, groups, messages and reactions",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Uploaded photos are served from the local media directory
os.makedirs(settings.MEDIA_ROOT, exist_ok=True)
app.mount(
    settings.MEDIA_URL_PREFIX.rstrip("/"),
    StaticFiles(directory=settings.MEDIA_ROOT),
    name="media",
)

app.include_router(session.router)
app.include_router(users.router)
app.include_router(conversations.router)
app.include_router(messages.router)
app.include_router(groups.router)


@app.exception_handler(MessengerError)
async def messenger_error_handler(request: Request, exc: MessengerError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    error = StorageError("Database error")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.get("/liveness")
async def liveness(db: Session = Depends(get_db)):
    try:
        ping(db)
    except SQLAlchemyError:
        logger.exception("Liveness check failed")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unavailable"},
        )
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("messenger.main:app", host="0.0.0.0", port=int(os.getenv("PORT", 3000)), reload=False)
