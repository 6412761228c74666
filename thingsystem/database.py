"""Engine, session factory and declarative base for the content store."""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .core.config import settings

DATABASE_URL = settings.database_url

# Requests, the reconciler thread and the boot sequence share the pool,
# so SQLite connections must be usable from any thread.
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Yield a session per request; roll back if the handler raised."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """Create the ``things`` table if it does not exist yet."""
    from . import models  # noqa: F401  (registers the mappings on Base)

    Base.metadata.create_all(bind=engine)
