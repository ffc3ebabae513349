from datetime import date, datetime, timedelta

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from sf_eventlog.models.log_sync import LogSyncProgressRow, LogSyncStatusRow


def _upsert(db: Session, model, values: dict, update_cols: list[str]) -> None:
    table = model.__table__
    if db.get_bind().dialect.name == 'postgresql':
        insert_stmt = pg_insert(table).values(values)
    else:
        insert_stmt = sqlite_insert(table).values(values)
    stmt = insert_stmt.on_conflict_do_update(
        index_elements=[table.c.sync_date, table.c.category],
        set_={col: getattr(insert_stmt.excluded, col) for col in update_cols},
    )
    db.execute(stmt)
    db.commit()


def upsert_status(db: Session, sync_date: date, category: str, status: str, message: str, last_modified: datetime | None = None):
    _upsert(
        db,
        LogSyncStatusRow,
        {
            'sync_date': sync_date,
            'category': category,
            'status': status,
            'message': message or '',
            'last_modified': last_modified or datetime.utcnow(),
        },
        ['status', 'message', 'last_modified'],
    )


def list_statuses(db: Session) -> list[LogSyncStatusRow]:
    return db.query(LogSyncStatusRow).order_by(LogSyncStatusRow.category, LogSyncStatusRow.sync_date.desc()).all()


def delete_status(db: Session, sync_date: date, category: str) -> int:
    deleted = (
        db.query(LogSyncStatusRow)
        .filter(LogSyncStatusRow.sync_date == sync_date, LogSyncStatusRow.category == category)
        .delete(synchronize_session=False)
    )
    db.commit()
    return int(deleted or 0)


def delete_statuses_older_than(db: Session, days: int, today: date | None = None) -> int:
    threshold = (today or date.today()) - timedelta(days=days)
    deleted = (
        db.query(LogSyncStatusRow)
        .filter(LogSyncStatusRow.sync_date < threshold)
        .delete(synchronize_session=False)
    )
    db.commit()
    return int(deleted or 0)


def upsert_progress(db: Session, sync_date: date, category: str, row: int, total: int):
    _upsert(
        db,
        LogSyncProgressRow,
        {
            'sync_date': sync_date,
            'category': category,
            'row': int(row),
            'total': int(total),
            'last_modified': datetime.utcnow(),
        },
        ['row', 'total', 'last_modified'],
    )


def delete_progress(db: Session, sync_date: date, category: str) -> int:
    deleted = (
        db.query(LogSyncProgressRow)
        .filter(LogSyncProgressRow.sync_date == sync_date, LogSyncProgressRow.category == category)
        .delete(synchronize_session=False)
    )
    db.commit()
    return int(deleted or 0)


def list_progress(db: Session) -> list[LogSyncProgressRow]:
    return db.query(LogSyncProgressRow).order_by(LogSyncProgressRow.last_modified).all()
