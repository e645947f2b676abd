from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker

from .models import Base


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url, echo=False):
    engine = create_engine(url, echo=echo, future=True)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def make_session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


def init_db(engine):
    """Create tables (and the partial loan index) if not present."""
    Base.metadata.create_all(engine)


def ping(engine):
    """
    Round-trip to the database. Returns (dialect name, server version string)
    and lets connection errors propagate.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
        version = engine.dialect.server_version_info
    return engine.dialect.name, ".".join(str(p) for p in version or ())


def transactional(func):
    """
    Run a service method as one unit of work on ``self.session``: commit when
    it returns, roll back and re-raise when anything goes wrong.
    """
    from functools import wraps

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            result = func(self, *args, **kwargs)
            self.session.commit()
            return result
        except Exception:
            self.session.rollback()
            raise

    return wrapper
