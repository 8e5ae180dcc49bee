import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from config import settings
from database import AsyncSessionLocal, init_db
from api.admin import router as admin_router
from api.auth import router as auth_router
from api.branding import router as branding_router
from api.messages import router as messages_router
from api.notifications import router as notifications_router
from api.status import router as status_router
from api.wizard import router as wizard_router
from services.container import build_services
from services.errors import SubmissionError

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    app.state.services = build_services(settings, AsyncSessionLocal)
    logger.info("%s started", settings.app_name)
    yield
    await app.state.services.aclose()


app = FastAPI(
    title=settings.app_name,
    description="Driver recruitment application intake and review API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SubmissionError)
async def submission_error_handler(request: Request, exc: SubmissionError):
    return JSONResponse(
        status_code=422,
        content={"errors": [e.as_dict() for e in exc.errors], "fieldErrors": exc.field_errors},
    )


app.include_router(auth_router)
app.include_router(wizard_router)
app.include_router(status_router)
app.include_router(messages_router)
app.include_router(notifications_router)
app.include_router(admin_router)
app.include_router(branding_router)

app.mount("/files", StaticFiles(directory=settings.document_root, check_dir=False), name="files")


@app.get("/health")
async def health():
    return {"status": "ok"}
