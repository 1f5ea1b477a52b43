import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from opvera.config import get_settings
from opvera.core.redis import close_redis
from opvera.database import SessionLocal
from opvera.repositories.channel_repository import ensure_default_channels
from opvera.routers import ai, assignments, auth, chat, leaderboard, projects, quizzes, users
from opvera.services import leaderboard as leaderboard_service  # importing subscribes the recompute handler

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = SessionLocal()
    try:
        created = ensure_default_channels(db)
        if created:
            logger.info("Created %d default channel(s)", created)
    except SQLAlchemyError as e:
        logger.warning("Default channels not seeded (run migrations?): %s", e)
        db.rollback()
    finally:
        db.close()
    try:
        yield
    finally:
        await close_redis()


app = FastAPI(title="Opvera API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(projects.router)
app.include_router(assignments.router)
app.include_router(quizzes.router)
app.include_router(leaderboard.router)
app.include_router(chat.router)
app.include_router(ai.router)


@app.exception_handler(leaderboard_service.LeaderboardWriteForbidden)
async def leaderboard_write_forbidden(request: Request, exc: leaderboard_service.LeaderboardWriteForbidden):
    logger.warning("Rejected direct leaderboard write on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


@app.get("/")
def root():
    return {"message": "Opvera API", "docs": "/docs"}
