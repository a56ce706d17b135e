import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker


def _default_database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite:///./startup_simulator.db")


def _connect_args(database_url: str) -> dict:
    # SQLite connections are shared across the FastAPI threadpool.
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


DATABASE_URL = _default_database_url()

engine = create_engine(
    DATABASE_URL,
    future=True,
    pool_pre_ping=True,
    connect_args=_connect_args(DATABASE_URL),
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

Base = declarative_base()


def init_db(bind=None) -> None:
    from app import db_models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
