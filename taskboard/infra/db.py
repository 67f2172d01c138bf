from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker

from taskboard.config import SETTINGS

engine = create_engine(SETTINGS.database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()


def init_db() -> None:
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))


def create_schema(bind=None) -> None:
    """Create missing tables directly; production databases go through alembic."""
    from . import models  # noqa: F401

    Base.metadata.create_all(bind or engine)
