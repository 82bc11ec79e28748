"""Database connection utilities."""

from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
import structlog

from ..config.config import settings
from .models import Base

logger = structlog.get_logger()


class Database:
    """Database connection manager."""

    def __init__(self):
        self.engine = None
        self.SessionLocal = None

    @property
    def is_initialized(self) -> bool:
        return self.SessionLocal is not None

    def initialize(self, url: Optional[str] = None):
        """Initialize database connection."""
        url = url or settings.database_url
        logger.info("Initializing database connection", dialect=url.split(":", 1)[0])

        connect_args = {}
        if url.startswith("sqlite"):
            # In-memory SQLite is shared across threads through the static pool
            connect_args["check_same_thread"] = False

        self.engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args=connect_args,
            echo=False,  # Set to True for SQL debugging
        )

        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=self.engine
        )

        self.create_tables()

        logger.info("Database connection initialized")

    def create_tables(self):
        """Create all tables."""
        try:
            Base.metadata.create_all(bind=self.engine)
            logger.info("Database tables created")
        except Exception as e:
            logger.error("Failed to create tables", error=str(e))
            raise

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    @contextmanager
    def get_session(self):
        """Get database session with automatic cleanup."""
        if not self.SessionLocal:
            raise RuntimeError("Database not initialized. Call initialize() first.")

        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


# Global database instance
db = Database()
