import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from app.config import DATABASE_URL, DATABASE_SSLMODE

logger = logging.getLogger(__name__)

# ======================================================
# DATABASE CONNECTION
# ======================================================

if DATABASE_URL.startswith("sqlite"):
    # TestClient runs handlers in a worker thread
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,       # drops stale connections after idle periods
        pool_size=5,
        max_overflow=2,
        pool_timeout=30,
        pool_recycle=300,
        connect_args={
            "sslmode": DATABASE_SSLMODE,
            "connect_timeout": 10,
        },
    )

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)

Base = declarative_base()


# ======================================================
# DEPENDENCY
# ======================================================

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ======================================================
# DATABASE BOOTSTRAP
# ======================================================

def init_database():
    """
    Idempotent schema bootstrap.

    Tables, indexes and the partial unique indexes guarding default
    addresses are all declared on the models, so ``create_all`` is enough.
    """
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database schema verified (%s tables)", len(Base.metadata.tables))


def drop_database():
    import app.models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
