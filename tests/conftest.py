import os
import sqlite3
import uuid
from datetime import date

import pytest
from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from scorecard.db import Base

load_dotenv(os.path.join(os.getcwd(), ".env"))

# Register UUID adapter for SQLite - store as string
sqlite3.register_adapter(uuid.UUID, lambda u: str(u))

# Monkey-patch SQLAlchemy's UUID type for SQLite compatibility
# This must happen before any models are imported
from sqlalchemy.sql import sqltypes  # noqa: E402

_original_uuid_bind_processor = sqltypes.Uuid.bind_processor
_original_uuid_result_processor = sqltypes.Uuid.result_processor


def _sqlite_uuid_bind_processor(self, dialect):
    if dialect.name == "sqlite":
        def process(value):
            if value is not None:
                if isinstance(value, uuid.UUID):
                    return str(value)
                return str(uuid.UUID(value)) if value else None
            return None
        return process
    return _original_uuid_bind_processor(self, dialect)


def _sqlite_uuid_result_processor(self, dialect, coltype):
    if dialect.name == "sqlite":
        def process(value):
            if value is not None:
                if isinstance(value, uuid.UUID):
                    return value
                return uuid.UUID(value) if value else None
            return None
        return process
    return _original_uuid_result_processor(self, dialect, coltype)


sqltypes.Uuid.bind_processor = _sqlite_uuid_bind_processor
sqltypes.Uuid.result_processor = _sqlite_uuid_result_processor

from scorecard.models import Agency, MemberRole  # noqa: E402
from tests.factories import make_form, make_kpi, make_member  # noqa: E402


def _resolve_test_database_url() -> str | None:
    raw_url = os.getenv("TEST_DATABASE_URL")
    if not raw_url:
        return None

    url = make_url(raw_url)
    if url.drivername.startswith("postgresql") and url.database != "scorecard_test":
        url = url.set(database="scorecard_test")
    return url.render_as_string(hide_password=False)


@pytest.fixture(scope="session")
def engine():
    database_url = _resolve_test_database_url()
    if database_url:
        engine = create_engine(database_url)
    else:
        engine = create_engine(
            "sqlite+pysqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        # pysqlite's implicit transactions swallow SAVEPOINTs; emit BEGIN ourselves.
        @event.listens_for(engine, "connect")
        def _sqlite_connect(dbapi_connection, _connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)

    return engine


@pytest.fixture()
def db_session(engine):
    connection = engine.connect()
    transaction = connection.begin()
    # Service commits release a savepoint; the outer transaction is discarded per test.
    SessionLocal = sessionmaker(
        bind=connection,
        autoflush=False,
        autocommit=False,
        join_transaction_mode="create_savepoint",
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


# --- Fixtures ---


@pytest.fixture()
def agency(db_session):
    agency = Agency(name=f"Agency {uuid.uuid4().hex[:6]}")
    db_session.add(agency)
    db_session.commit()
    db_session.refresh(agency)
    return agency


@pytest.fixture()
def sales_member(db_session, agency):
    return make_member(db_session, agency, MemberRole.Sales, name="Sally Sales")


@pytest.fixture()
def hybrid_member(db_session, agency):
    return make_member(db_session, agency, MemberRole.Hybrid, name="Harper Hybrid")


@pytest.fixture()
def sales_form(db_session, agency):
    return make_form(db_session, agency, MemberRole.Sales)


@pytest.fixture()
def service_form(db_session, agency):
    return make_form(db_session, agency, MemberRole.Service)


@pytest.fixture()
def kpi_version(db_session, agency):
    _, version = make_kpi(db_session, agency, "outbound_calls", "Outbound Calls")
    return version


@pytest.fixture()
def monday():
    return date(2026, 3, 2)
