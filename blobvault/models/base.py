from functools import lru_cache

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection"""
    if type(dbapi_connection).__module__.startswith('sqlite3'):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@lru_cache(maxsize=None)
def get_engine(database_url: str, echo: bool = False):
    """
    Get (or create) the engine for a database URL.

    Args:
        database_url: SQLAlchemy database URL
        echo: Whether to echo SQL statements

    Returns:
        SQLAlchemy engine, shared per URL
    """
    # For SQLite, we need to allow sharing connections across threads
    connect_args = {}
    if database_url.startswith('sqlite'):
        connect_args['check_same_thread'] = False

    return create_engine(database_url, echo=echo, connect_args=connect_args)


def create_session(database_url: str, echo: bool = False):
    """
    Create a database session.

    Args:
        database_url: SQLAlchemy database URL
        echo: Whether to echo SQL statements

    Returns:
        Database session
    """
    engine = get_engine(database_url, echo)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return Session()


def init_db(database_url: str, echo: bool = False):
    """
    Initialize database tables.

    Args:
        database_url: SQLAlchemy database URL
        echo: Whether to echo SQL statements
    """
    # Import models so they are registered with Base.metadata
    from . import blob  # noqa: F401

    Base.metadata.create_all(bind=get_engine(database_url, echo))
