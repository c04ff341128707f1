from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from artmarket.core.config import settings


def build_engine(database_url: str):
    """
    Create a database engine for the given URL.

    SQLite needs cross-thread access because FastAPI runs sync routes in a
    threadpool; an in-memory SQLite database must also share one connection
    or every session would see an empty database.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


# Create database engine - manages connection pool
engine = build_engine(settings.DATABASE_URL)

# Create session factory - each request gets a new session
# autocommit=False: Changes require explicit commit (prevents accidental commits)
# autoflush=False: Don't auto-flush before queries
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all database models
Base = declarative_base()


def get_db():
    """
    Dependency for getting database session.

    The session is automatically closed after the request completes (via finally block).
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
