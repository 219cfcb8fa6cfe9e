from sqlalchemy import JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def create_db_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        # One shared connection so an in-memory database survives across sessions
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    # Ensure we use 127.0.0.1 instead of localhost to avoid Windows/Docker resolution issues
    db_url = database_url.replace("localhost", "127.0.0.1")
    return create_engine(db_url, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """
    Creates all tables defined in the metadata.
    This replaces Alembic for simple setups.
    """
    # Import models here to ensure they are registered with Base
    from src.models.lead_event import LeadEvent  # noqa
    from src.models.audit_log import AuditLog  # noqa

    Base.metadata.create_all(bind=engine)
