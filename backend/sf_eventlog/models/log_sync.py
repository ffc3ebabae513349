from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Integer, String, Text, UniqueConstraint

from sf_eventlog.db.base import Base


class LogSyncStatusRow(Base):
    __tablename__ = 'log_sync_status'
    __table_args__ = (UniqueConstraint('sync_date', 'category', name='uq_log_sync_status_date_category'),)

    id = Column(Integer, primary_key=True, index=True)
    sync_date = Column(Date, nullable=False, index=True)
    category = Column(String(64), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    message = Column(Text, nullable=False, default='')
    last_modified = Column(DateTime, nullable=False, default=datetime.utcnow)


class LogSyncProgressRow(Base):
    __tablename__ = 'log_sync_progress'
    __table_args__ = (UniqueConstraint('sync_date', 'category', name='uq_log_sync_progress_date_category'),)

    id = Column(Integer, primary_key=True, index=True)
    sync_date = Column(Date, nullable=False)
    category = Column(String(64), nullable=False)
    row = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False, default=0)
    last_modified = Column(DateTime, nullable=False, default=datetime.utcnow)
