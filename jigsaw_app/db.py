from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import DATABASE_URL


def make_engine(url: str, **kwargs):
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # sessions cross threadpool workers
    return create_engine(url, connect_args=connect_args, **kwargs)


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db(bind=None) -> None:
    from . import models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=bind or engine)


def get_db(request: Request):
    """
    FastAPI dependency that provides a database session from the app's
    session factory and makes sure it is closed after the request.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
