"""
Main FastAPI application entry point.
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dashboard.core.config import settings
from dashboard.core.database import init_db
from dashboard.core.errors import install_exception_handlers
from dashboard.api.auth import router as auth_router
from dashboard.api.exams import router as exams_router
from dashboard.api.profile import router as profile_router
from dashboard.api.scores import router as scores_router
from dashboard.api.submissions import router as submissions_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})...")
    init_db()
    logger.info("Database initialized")
    yield
    logger.info("Shutdown complete")

app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=settings.CORS_ORIGINS, allow_credentials=True, allow_methods=["*"], allow_headers=["*"])
install_exception_handlers(app)

prefix = settings.API_PREFIX
app.include_router(auth_router, prefix=f"{prefix}/auth", tags=["auth"])
app.include_router(profile_router, prefix=f"{prefix}/profile", tags=["profile"])
app.include_router(scores_router, prefix=prefix, tags=["scores"])
app.include_router(submissions_router, prefix=f"{prefix}/submissions", tags=["submissions"])
app.include_router(exams_router, prefix=f"{prefix}/exams", tags=["exams"])

@app.get("/health", tags=["Health"])
def health():
    return {"status": "ok", "version": settings.APP_VERSION, "environment": settings.ENVIRONMENT}

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dashboard.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
    )
