"""
Topichat Backend - FastAPI Application
Topic chatrooms with an AI curator that keeps conversations going
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from topichat.config import get_settings
from topichat.database import engine, Base, SessionLocal
from topichat.routers import auth, chatrooms, curator, feeds, messages, profiles
from topichat.services.curators import ensure_curator_profile

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# Create database tables
Base.metadata.create_all(bind=engine)

with SessionLocal() as db:
    ensure_curator_profile(db, settings)

app = FastAPI(
    title="Topichat API",
    description="Topic chatrooms with an AI curator for idle prompts, news and Q&A",
    version="0.1.0",
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "topichat-api"}


app.include_router(auth.router, prefix="/api", tags=["auth"])
app.include_router(profiles.router, prefix="/api", tags=["profiles"])
app.include_router(chatrooms.router, prefix="/api", tags=["chatrooms"])
app.include_router(messages.router, prefix="/api", tags=["messages"])
app.include_router(feeds.router, prefix="/api", tags=["feeds"])
app.include_router(curator.router, prefix="/api", tags=["curator"])
