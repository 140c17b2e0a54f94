"""Database connection and session management."""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional
from sqlalchemy import create_engine, Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.logging import get_logger

logger = get_logger(__name__)

# Base class for all database models
Base = declarative_base()


class Database:
    """Owns the SQLAlchemy engine and session factory for one database.

    Stores receive a Database instead of reaching for a module-level engine,
    so tests can point each store at its own throwaway database.
    """

    def __init__(
        self,
        database_url: str = "sqlite:///./flowline.db",
        echo: bool = False,
        connect_args: Optional[Dict[str, Any]] = None
    ):
        self.database_url = database_url
        is_sqlite = database_url.startswith("sqlite")

        if connect_args is None:
            connect_args = {"check_same_thread": False} if is_sqlite else {}

        if is_sqlite and (database_url in ("sqlite://", "sqlite:///") or ":memory:" in database_url):
            # One shared connection keeps in-memory databases alive across sessions
            self.engine: Engine = create_engine(
                database_url,
                connect_args=connect_args,
                poolclass=StaticPool,
                echo=echo
            )
        else:
            self.engine = create_engine(
                database_url,
                echo=echo,
                connect_args=connect_args,
                pool_pre_ping=True
            )

        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    @classmethod
    def from_config(cls, config) -> "Database":
        """Create a Database from an ``AppConfig``."""
        return cls(
            config.database_url,
            echo=config.database_echo,
            connect_args=config.get_database_connect_args()
        )

    def create_tables(self) -> None:
        """Create all database tables."""
        # Register the mapped classes on Base.metadata before creating
        from . import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info(f"Database tables ready ({self.engine.url.get_backend_name()})")

    def drop_tables(self) -> None:
        """Drop all database tables."""
        from . import models  # noqa: F401

        Base.metadata.drop_all(bind=self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Session scope that commits on success and rolls back on error."""
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def dispose(self) -> None:
        """Close all pooled connections."""
        self.engine.dispose()
