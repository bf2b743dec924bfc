from sqlalchemy import (
    Boolean, Column, Date, DateTime, Index, Integer,
    String, Text, UniqueConstraint,
)
from vplan.database import Base


class PlanEntry(Base):
    __tablename__ = "entries"

    id               = Column(Integer, primary_key=True, autoincrement=True)
    day              = Column(Date, nullable=False)
    weekday          = Column(String(16), nullable=True)
    # identity columns are NOT NULL; "" stands in for an absent value so that
    # the unique constraint still matches rows with missing fields
    lesson           = Column(String(32), nullable=False, default="")
    subject          = Column(String(64), nullable=False, default="")
    change_type      = Column(String(64), nullable=False, default="")
    room             = Column(String(64), nullable=False, default="")
    classes          = Column(Text, nullable=False)
    source_page      = Column(String(32), nullable=False)
    teacher          = Column(String(64), nullable=True)
    original_subject = Column(String(64), nullable=True)
    note             = Column(Text, nullable=True)
    week_type        = Column(String(128), nullable=True)
    color            = Column(String(32), nullable=True)
    cancelled        = Column(Boolean, nullable=False, default=False)
    changed          = Column(Boolean, nullable=False, default=False)
    created_at       = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "day", "lesson", "subject", "change_type", "room", "classes", "source_page",
            name="uq_entry",
        ),
        Index("idx_entries_day", "day"),
        Index("idx_entries_classes", "classes"),
    )


class FetchLog(Base):
    __tablename__ = "fetch_log"

    id            = Column(Integer, primary_key=True, autoincrement=True)
    timestamp     = Column(DateTime(timezone=True), nullable=False)
    success       = Column(Boolean, nullable=False)
    error         = Column(Text, nullable=True)
    pages_fetched = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_fetch_log_success", "success"),
    )
