from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from opvera.config import get_settings

settings = get_settings()


def create_db_engine(url: str, **kwargs) -> Engine:
    """Engine for `url`. SQLite gets FastAPI-friendly threading and enforced foreign keys (ON DELETE CASCADE)."""
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, echo=False, **kwargs)

    engine = create_engine(url, connect_args={"check_same_thread": False}, echo=False, **kwargs)

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


engine = create_db_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
