"""Database access: engine, sessions and transactional units of work."""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from wheelbook.errors import ConflictError, PersistenceError, WheelbookError
from wheelbook.services.persistence.tables import Base
from wheelbook.system import LoggerFactory
from wheelbook.system.config import DatabaseConfig

logger = LoggerFactory.get_logger()


class Database:
    """
    Owns the SQLAlchemy engine and hands out sessions.

    Every mutating service call runs inside transaction(): the whole block
    commits together or nothing does.

    Example:
        >>> db = Database("sqlite:///wheelbook.db")
        >>> db.create_all()
        >>> with db.transaction() as session:
        ...     session.add(row)
    """

    def __init__(self, url: str = "sqlite:///wheelbook.db", echo: bool = False, engine: Engine | None = None):
        """
        Initialize database.

        Args:
            url: SQLAlchemy URL (ignored when engine is given)
            echo: Echo emitted SQL
            engine: Pre-built engine (tests, shared pools)
        """
        if engine is None:
            if url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every thread sees its own empty database
                engine = create_engine(
                    url,
                    echo=echo,
                    poolclass=StaticPool,
                    connect_args={"check_same_thread": False},
                )
            else:
                engine = create_engine(url, echo=echo)
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

        logger.debug("database.initialized", url=str(engine.url))

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "Database":
        """Build from the database section of the system config."""
        return cls(url=config.url, echo=config.echo)

    def create_all(self) -> None:
        """Create all tables that do not exist yet."""
        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        """Drop all tables (tests only)."""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Run a block as one atomic unit of work.

        Commits on normal exit. Any exception rolls everything back:
        wheelbook errors propagate unchanged, optimistic-lock collisions
        become ConflictError and other storage failures PersistenceError.
        """
        session = self._session_factory()
        try:
            with session.begin():
                yield session
        except WheelbookError:
            raise
        except StaleDataError as exc:
            logger.warning("database.concurrent_update", error=str(exc))
            raise ConflictError("Record was modified concurrently; reload and retry") from exc
        except SQLAlchemyError as exc:
            logger.error("database.transaction_failed", error=str(exc))
            raise PersistenceError(f"Transaction failed and was rolled back: {exc}") from exc
        finally:
            session.close()

    @contextmanager
    def read_session(self) -> Iterator[Session]:
        """Session for read-only queries (never commits)."""
        session = self._session_factory()
        try:
            yield session
        finally:
            session.rollback()
            session.close()
