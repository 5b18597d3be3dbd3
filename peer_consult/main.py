import logging

from peer_consult.config import settings

# Configure logging before the application modules are imported
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(levelname)s:%(name)s:%(message)s'
)

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from peer_consult.database import Base, engine
from peer_consult import models  # noqa: F401  registers tables on Base.metadata
from peer_consult.routers import consultations

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup"""
    logger.info(f"Starting Peer Consult API ({settings.ENVIRONMENT})")
    Base.metadata.create_all(bind=engine)
    yield
    logger.info("Shutting down Peer Consult API")


app = FastAPI(
    title="Peer Consult API",
    description="Doctor-to-doctor consultation requests, replies and consult search",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(consultations.router)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "peer-consult"}
