import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB


# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> uuid.UUID:
    return uuid.uuid4()


def one_of(column: str, values) -> str:
    """SQL text for a CHECK that `column` holds one of `values`."""
    quoted = ",".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"
