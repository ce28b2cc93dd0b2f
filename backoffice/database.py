from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from Security.security_config import SECURITY_SETTINGS

DATABASE_URL = SECURITY_SETTINGS["DATABASE_URL"]


def is_sqlite_database(url):
    return url is not None and url.startswith("sqlite")


IS_SQLITE_DB = is_sqlite_database(DATABASE_URL)

# SQLite connections are shared between the request threads and the scheduler thread.
_connect_args = {"check_same_thread": False} if IS_SQLITE_DB else {}

engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    # models must be imported so their tables are registered on Base.metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine, checkfirst=True)
