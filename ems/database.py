from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from ems.core.config import settings


def build_engine(url: str, **engine_kwargs) -> Engine:
    """
    Engine for PostgreSQL or SQLite.

    SQLite needs foreign keys switched on per connection; without it the
    user references on balances, leaves, attendance and salaries go unchecked.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, **engine_kwargs)

    sqlite_engine = create_engine(url, connect_args={"check_same_thread": False}, **engine_kwargs)

    @event.listens_for(sqlite_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    """
    One session per request. Services commit or roll back their own units of work.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    """Create the ledger, attendance, payroll and audit tables if missing."""
    import ems.models  # noqa: F401  registers every model on Base.metadata
    Base.metadata.create_all(bind=engine)
