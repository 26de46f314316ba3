import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .core.config import get_settings
from .core.db import dispose_engine
from .core.responses import ValidationFailed
from .routes_admin import router as admin_router
from .routes_portal import router as portal_router
from .routes_public import router as public_router


settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Dojo Storm backend starting")
    yield
    await dispose_engine()
    logger.info("Dojo Storm backend stopped")


app = FastAPI(title="Dojo Storm Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Field-level detail stays in the server log.
    logger.debug(f"Rejected request to {request.url.path}: {exc.errors()}")
    return ValidationFailed().to_response()


app.include_router(admin_router)
app.include_router(portal_router)
app.include_router(public_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
