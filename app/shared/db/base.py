from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def json_column_type():
    """JSON on SQLite (tests), JSONB on PostgreSQL."""
    return JSON().with_variant(JSONB, "postgresql")
