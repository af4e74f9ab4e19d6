from collections.abc import Generator, Mapping
from typing import Any

from sqlalchemy import ColumnElement, CursorResult, create_engine, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, MappedAsDataclass, Session, sessionmaker

from app.core.config import get_settings

settings = get_settings()

CONNECTION_URL = settings.database_url

connection_url = make_url(CONNECTION_URL)
engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}
connect_args: dict[str, Any] = {}

if connection_url.drivername.startswith("sqlite"):
    # Relax SQLite's default thread check so the same connection can be reused across requests.
    connect_args["check_same_thread"] = False
else:
    engine_kwargs.update(
        {
            "pool_size": 5,
            "max_overflow": 10,
            "pool_recycle": 1800,
            "pool_timeout": 30,
        }
    )
    connect_args["connect_timeout"] = 5

if connect_args:
    engine_kwargs["connect_args"] = connect_args

engine = create_engine(CONNECTION_URL, **engine_kwargs)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db() -> Generator[Session]:
    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def ping_database() -> bool:
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False


_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def insert_on_conflict(
    db: Session,
    model: type["Base"],
    values: Mapping[str, Any],
    *,
    index_elements: list[str],
    set_: Mapping[str, Any] | None = None,
    where: ColumnElement[bool] | None = None,
    excluded: list[str] | None = None,
) -> CursorResult:
    """
    Run a single ``INSERT ... ON CONFLICT`` statement keyed on a unique constraint.

    Without ``set_`` or ``excluded`` the conflicting row is left untouched
    (``DO NOTHING``). ``excluded`` lists columns copied from the proposed row,
    ``set_`` holds literal overrides, and ``where`` guards the update branch
    against the existing row. The affected row count is 0 when nothing changed.
    """
    dialect = db.get_bind().dialect.name
    insert = _INSERT_BY_DIALECT.get(dialect)
    if insert is None:
        raise RuntimeError(f"Upserts are not supported on {dialect}")

    stmt = insert(model).values(**values)
    updates: dict[str, Any] = dict(set_ or {})
    for column in excluded or []:
        updates[column] = stmt.excluded[column]

    if updates:
        stmt = stmt.on_conflict_do_update(
            index_elements=index_elements,
            set_=updates,
            where=where,
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=index_elements)
    return db.execute(stmt)


class Base(MappedAsDataclass, DeclarativeBase):
    pass
