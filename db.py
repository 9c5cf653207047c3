import logging
from contextlib import contextmanager
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import streamlit as st
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config import get_settings
from models import Base

logger = logging.getLogger("counseldesk.db")

DEFAULT_DATABASE_URL = "sqlite:///counseldesk.db"


def _database_url_from_secrets() -> str | None:
    try:
        for key in ("DATABASE_URL", "database_url"):
            if key in st.secrets:
                value = str(st.secrets[key]).strip()
                if value:
                    return value
        if "database" in st.secrets and "url" in st.secrets["database"]:
            value = str(st.secrets["database"]["url"]).strip()
            if value:
                return value
    except Exception:
        # No secrets.toml outside Streamlit Cloud
        logger.debug("Streamlit secrets unavailable; using environment.")
        return None
    return None


def normalize_database_url(database_url: str) -> str:
    value = database_url.strip().strip('"').strip("'")
    if value.startswith("postgres://"):
        value = value.replace("postgres://", "postgresql://", 1)
    if value.startswith("postgresql://"):
        value = value.replace("postgresql://", "postgresql+psycopg2://", 1)
    if not value.startswith("postgresql"):
        return value

    # Hosted Postgres providers expect TLS; local servers usually do not.
    parsed = urlparse(value)
    hostname = (parsed.hostname or "").lower()
    is_local = hostname in {"localhost", "127.0.0.1", ""}
    query = dict(parse_qsl(parsed.query, keep_blank_values=True))
    if not is_local and "sslmode" not in query:
        query["sslmode"] = "require"
        value = urlunparse(parsed._replace(query=urlencode(query)))
    return value


def resolve_database_url() -> str:
    database_url = get_settings().database_url or _database_url_from_secrets()
    if not database_url:
        logger.info("DATABASE_URL not set; falling back to %s", DEFAULT_DATABASE_URL)
        return DEFAULT_DATABASE_URL
    return normalize_database_url(database_url)


@st.cache_resource
def get_engine() -> Engine:
    url = resolve_database_url()
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


@st.cache_resource
def get_session_factory() -> sessionmaker:
    # Rows are handed to pure logic after the session closes.
    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, expire_on_commit=False)


@contextmanager
def db_session() -> Session:
    factory = get_session_factory()
    session: Session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("Database transaction rolled back")
        raise
    finally:
        session.close()


def init_schema() -> None:
    Base.metadata.create_all(bind=get_engine())
