from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from bizdesk.config import settings

# SQLite pools (SingletonThreadPool for :memory:) reject the QueuePool sizing args
engine_options = (
    {"connect_args": {"check_same_thread": False}}
    if settings.is_sqlite
    else {"pool_size": settings.DB_POOL_SIZE, "max_overflow": settings.DB_MAX_OVERFLOW}
)

# Create SQLAlchemy engine
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,  # Verify connections before using
    echo=settings.DEBUG,  # Log SQL queries in debug mode
    **engine_options,
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """
    FastAPI dependency for database sessions.

    Yields a database session and ensures it's closed after use. One session
    backs exactly one action invocation; sessions are never shared.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
