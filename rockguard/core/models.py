"""
SQLAlchemy models for the persisted alert log mirror.

The in-memory log is authoritative while the process runs; this table only
lets a restarted process recover the records written since the last clear.
"""
from sqlalchemy import Column, DateTime, Float, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class AlertLogRecord(Base):
    """
    One row per AlertRecord, append-only.

    Rows are never updated or deleted; a clear is itself a row with
    status CLEARED.
    """
    __tablename__ = "alert_log"

    id = Column(Integer, primary_key=True, autoincrement=False)
    level = Column(String(20), nullable=False, index=True)
    source = Column(String(30), nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)
    subject = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    condition = Column(String(255), nullable=True)
    score = Column(Float, nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self) -> str:
        return (
            f"<AlertLogRecord(id={self.id}, level={self.level}, "
            f"status={self.status}, subject={self.subject})>"
        )
