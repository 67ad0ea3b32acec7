import os

from fastapi import Request
from sqlalchemy import create_engine, text, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session
from sqlalchemy.pool import NullPool


class Base(DeclarativeBase):
    pass


def _quote_ident(ident: str) -> str:
    # Safe-ish quoting for Postgres identifiers (schema/table)
    return '"' + ident.replace('"', '""') + '"'


class Store:
    """
    Owns the engine and session factory for one application instance.

    Opened by the app lifespan (or built directly in tests) and disposed
    on shutdown. Handlers get sessions through get_db().
    """

    def __init__(self, database_url: str, schema: str | None = None, **engine_kwargs):
        self.database_url = database_url
        self.engine = create_engine(database_url, **engine_kwargs)
        self.schema = schema if self.engine.dialect.name == "postgresql" else None

        if self.schema:
            @event.listens_for(self.engine, "connect")
            def _set_search_path(dbapi_conn, _):
                # Ensures every new connection uses the schema
                cur = dbapi_conn.cursor()
                cur.execute(f"SET search_path TO {_quote_ident(self.schema)}")
                cur.close()

        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, autocommit=False)

    @classmethod
    def from_env(cls) -> "Store":
        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL is not set")
        return cls(
            database_url,
            schema=os.getenv("DB_SCHEMA", "decorbook"),
            poolclass=NullPool,
            pool_pre_ping=True,
        )

    def init_schema(self) -> None:
        """
        Create the schema (Postgres only) and all tables.
        Prefer migrations at deploy-time in production.
        """
        if self.schema:
            with self.engine.begin() as conn:
                conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {_quote_ident(self.schema)}"))
        Base.metadata.create_all(bind=self.engine)

    def session(self) -> Session:
        return self.SessionLocal()

    def close(self) -> None:
        self.engine.dispose()


def get_db(request: Request):
    db = request.app.state.store.session()
    try:
        yield db
    finally:
        db.close()
