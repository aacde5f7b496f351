from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from koru_forms.core.config import settings

connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    """Session factory for work that outlives the request session (background tasks)."""
    return SessionLocal


def init_db(bind=None):
    from koru_forms.models import Base

    Base.metadata.create_all(bind=bind or engine)
