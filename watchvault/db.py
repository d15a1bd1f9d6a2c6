import logging
import sqlite3
from contextlib import contextmanager

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from watchvault.exceptions import LocalStorageException
from watchvault.utils import now_utc  # noqa: F401  (re-exported for models)

# Retrieve main logger
logger = logging.getLogger("main")

db = SQLAlchemy()


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas for better performance"""
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


@contextmanager
def unit_of_work(operation):
    """Commit everything staged inside the block, or roll it all back.

    Any SQLAlchemy failure (lookup, flush or commit) is re-raised as a
    LocalStorageException so callers see a single typed error.
    """
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise LocalStorageException(f"{operation} failed: {e}") from e
    except Exception:
        db.session.rollback()
        raise


@contextmanager
def storage_errors(operation):
    """Translate SQLAlchemy failures of a read into LocalStorageException (no commit)"""
    try:
        yield db.session
    except SQLAlchemyError as e:
        db.session.rollback()
        raise LocalStorageException(f"{operation} failed: {e}") from e

def init_db(app):
    """Bind the shared SQLAlchemy instance to `app` and create missing tables"""
    db.init_app(app)
    with app.app_context():
        # Import models so their tables are registered on the metadata
        import watchvault.models  # noqa: F401

        db.create_all()
        logger.info(f"Local store ready at {app.config['SQLALCHEMY_DATABASE_URI']}")
