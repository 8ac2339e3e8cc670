from typing import Iterator

from fastapi import Request
from sqlmodel import SQLModel, Session, create_engine

from app.settings import settings


def make_engine(url: str = None):
    url = url or settings.DATABASE_URL
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


def init_db(engine) -> None:
    SQLModel.metadata.create_all(engine)


def get_session(request: Request) -> Iterator[Session]:
    with Session(request.app.state.engine) as s:
        yield s


def upsert(s: Session, model, values: dict, key: str, update_fields: dict):
    """
    INSERT ... ON CONFLICT (key) DO UPDATE in one statement, so two first
    writers can't both try to insert the same row.
    """
    if s.get_bind().dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert
    stmt = insert(model).values(**values).on_conflict_do_update(index_elements=[key], set_=update_fields)
    s.connection().execute(stmt)
    s.commit()
