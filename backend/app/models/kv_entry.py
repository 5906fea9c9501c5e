"""
Key-value entry model — the single table behind the registry's storage.

Every piece of durable state is one row addressed by a namespaced key:
  • key:<email>              — KeyRecord (JSON)
  • lookup:<api_key>         — email the key belongs to
  • global:totalEmailsChecked — scalar counter
  • report:<domain>          — community report for a domain
  • blocklist:domains        — merged disposable-domain list

Design notes:
  • value is JSONB on Postgres and plain JSON elsewhere (SQLite in tests).
  • Prefix scans use the primary-key index (`key LIKE 'prefix%'`).
"""

import datetime
from typing import Any

from sqlalchemy import JSON, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class KVEntry(Base):
    """One namespaced key and its JSON value."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(
        Text,
        primary_key=True,
    )
    value: Mapped[Any] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<KVEntry key={self.key!r}>"
