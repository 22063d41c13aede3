"""Engine and session factory construction.

Sessions are created per unit of work and passed explicitly into the
services; nothing in manualflow holds a module-level connection.
"""

from functools import lru_cache
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from manualflow.core.config import get_settings


def create_db_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Create an engine with pool settings suited to the backend."""
    engine_kwargs: dict[str, object] = {
        "echo": echo,
        "pool_pre_ping": True,
    }
    if database_url.startswith("postgres"):
        engine_kwargs.update(
            {
                "pool_recycle": 1800,
                "pool_size": 5,
                "max_overflow": 10,
                "pool_timeout": 30,
            }
        )
    elif database_url.startswith("sqlite"):
        # Request handlers may run on worker threads
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(database_url, **engine_kwargs)


def create_session_factory(
    database_url: Optional[str] = None,
    *,
    engine: Optional[Engine] = None,
) -> sessionmaker:
    """
    Build a session factory.

    Args:
        database_url: URL to connect to (defaults to settings.database_url)
        engine: Existing engine to bind instead of creating one

    Returns:
        A ``sessionmaker`` producing plain ``Session`` objects
    """
    if engine is None:
        settings = get_settings()
        engine = create_db_engine(
            database_url or settings.database_url,
            echo=settings.sql_echo,
        )
    return sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        expire_on_commit=False,
    )


@lru_cache
def get_session_factory() -> sessionmaker:
    """Process-wide session factory used by the HTTP layer."""
    return create_session_factory()
