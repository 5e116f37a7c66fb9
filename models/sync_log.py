from sqlalchemy import Column, BigInteger, Integer, String, Text, DateTime, Enum, Index
from datetime import datetime
from models.base import Base, SyncStatus, enum_values


class SyncLog(Base):
    """
    One row per partner sync run.

    Lifecycle:
    - Inserted as RUNNING when the run starts
    - items_found / items_added refreshed every checkpoint interval
    - Finalized exactly once (success, error, timeout...)
    - A RUNNING row left behind by a crashed run is flipped to ERROR by the
      next run for the same platform, so a platform never has two RUNNING rows
    """
    __tablename__ = "sync_logs"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    platform = Column(String(200), nullable=False, index=True)
    status = Column(
        Enum(SyncStatus, name="sync_status", values_callable=enum_values),
        nullable=False,
        default=SyncStatus.RUNNING,
    )

    items_found = Column(Integer, nullable=False, default=0)
    items_added = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_sync_logs_platform_status", "platform", "status"),
        Index("idx_sync_logs_created", "created_at"),
    )
