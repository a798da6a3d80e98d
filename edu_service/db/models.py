"""
SQLAlchemy ORM models.

  - activity_logs → append-only user activity trail (EXAM_STARTED,
    EXAM_SUBMITTED, PATH_GENERATED, NOTES_GENERATED, …).  Written
    fire-and-forget; nothing reads it back inside this service.
"""
from sqlalchemy import JSON, BigInteger, Column, DateTime, Integer, String, func

from edu_service.db.database import Base


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id        = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id   = Column(String(128), nullable=False, index=True)
    action    = Column(String(50), nullable=False)
    details   = Column(JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
