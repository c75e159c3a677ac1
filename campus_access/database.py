"""
Database handle and session management.
"""
import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Owns the engine and session factory for one database.

    Built explicitly at startup and disposed at shutdown; nothing in the
    package holds a module-level engine.
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        url = make_url(database_url)
        engine_options = {'echo': echo}
        if url.get_backend_name() == 'sqlite':
            engine_options['connect_args'] = {'check_same_thread': False}
            if url.database in (None, '', ':memory:'):
                # One shared connection, otherwise every session sees an empty database
                engine_options['poolclass'] = StaticPool
        else:
            engine_options['pool_pre_ping'] = True

        self.engine = create_engine(database_url, **engine_options)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        logger.info('Database engine initialized: %s', url.render_as_string(hide_password=True))

    def create_tables(self) -> None:
        # Model modules register their tables on Base when imported
        from campus_access.models import appointment, college, department, membership, user  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info('Database tables created')

    def drop_tables(self) -> None:
        Base.metadata.drop_all(bind=self.engine)
        logger.warning('All database tables dropped')

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        session = self.SessionLocal()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info('Database engine disposed')
