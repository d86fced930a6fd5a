from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sharpcrm.persistence.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttributeItem(Base):
    __tablename__ = "attribute_items"
    __table_args__ = (UniqueConstraint("table_name", "item_key", name="uq_attribute_items_table_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    table_name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    item_key: Mapped[str] = mapped_column(String(128), nullable=False)
    attributes: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
