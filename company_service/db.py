"""Database connection setup for the company service using SQLAlchemy."""

import os
import logging
from fastapi import HTTPException
from sqlalchemy import create_engine, event, exc
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from dotenv import load_dotenv

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

load_dotenv()

DB_USER = os.getenv("DB_USER")
DB_PASS = os.getenv("DB_PASS")
DB_HOST = os.getenv("DB_HOST")
DB_NAME = os.getenv("DB_NAME")


def build_database_url() -> str:
    """
    Resolves the SQLAlchemy URL.
    DATABASE_URL wins; otherwise the MySQL URL is assembled from the DB_* variables.
    """
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    required_db_vars = {"DB_USER", "DB_PASS", "DB_HOST", "DB_NAME"}
    missing_vars = required_db_vars - set(os.environ)
    if missing_vars:
        logger.warning(
            f"Missing database environment variables: {', '.join(sorted(missing_vars))}. "
            "Falling back to local SQLite database."
        )
        return "sqlite:///./company_service.db"

    return f"mysql+pymysql://{DB_USER}:{DB_PASS}@{DB_HOST}/{DB_NAME}"


SQLALCHEMY_DATABASE_URL = build_database_url()


def _engine_options(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    options = {"connect_args": {"check_same_thread": False}}
    # In-memory databases live as long as their single connection.
    if url in ("sqlite://", "sqlite:///:memory:"):
        options["poolclass"] = StaticPool
    return options


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


try:
    engine = create_engine(SQLALCHEMY_DATABASE_URL, **_engine_options(SQLALCHEMY_DATABASE_URL))
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    with engine.connect() as connection:
        logger.info(f"Database connection established ({engine.dialect.name}).")
except exc.SQLAlchemyError as e:
    logger.error(f"Error connecting to the database: {e}", exc_info=True)
    engine = None


# Each request gets its own session from this factory.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine) if engine else None

Base = declarative_base()


def get_db():
    """
    FastAPI dependency yielding a database session.
    Rolls back on database errors and always closes the session.
    """
    if SessionLocal is None:
        logger.error("Database session factory is not initialised.")
        raise HTTPException(status_code=503, detail="Database service unavailable.")

    db = SessionLocal()
    try:
        yield db
    except exc.SQLAlchemyError as e:
        logger.error(f"Database error during request: {e}", exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()
