"""
Daily application-email quota per student.

The day key is the server-local calendar date (`date.today()`), not UTC.
The counter is only incremented by `commit()` after a successful send, so a
failed dispatch never consumes quota.

Check-then-commit spans the (slow) email dispatch. Callers hold
`candidate_lock(student_id)` across check, dispatch and commit, which
serializes a student's submissions inside this process. Across processes the
count can overshoot by the number of concurrent in-flight sends.

The day's row is created by an upsert, so two processes counting the first
email of the day at the same moment both land on the one row.
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date

from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from ..config import DAILY_EMAIL_LIMIT
from ..models.email_tracking import StudentEmailTracking

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
# student_id -> [lock, holders]; entries go away once nobody holds or waits.
_candidate_locks: dict[int, list] = {}


@dataclass(frozen=True)
class QuotaCheck:
    allowed: bool
    current_count: int
    limit: int = DAILY_EMAIL_LIMIT

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.current_count)


@contextmanager
def candidate_lock(student_id: int):
    """Serialize quota-consuming work for one student."""
    key = int(student_id)
    with _registry_lock:
        entry = _candidate_locks.get(key)
        if entry is None:
            entry = [threading.Lock(), 0]
            _candidate_locks[key] = entry
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _registry_lock:
            entry[1] -= 1
            if entry[1] == 0:
                del _candidate_locks[key]


def _get_row(db: Session, *, student_id: int, today: date) -> StudentEmailTracking | None:
    return (
        db.query(StudentEmailTracking)
        .filter(StudentEmailTracking.student_id == int(student_id), StudentEmailTracking.email_date == today)
        .first()
    )


def _increment_statement(db: Session, *, student_id: int, today: date):
    """INSERT today's row with count 1, or add 1 to the existing one."""
    values = {"student_id": student_id, "email_date": today, "email_count": 1}
    if db.get_bind().dialect.name == "mysql":
        stmt = mysql_insert(StudentEmailTracking).values(**values)
        return stmt.on_duplicate_key_update(email_count=StudentEmailTracking.email_count + 1)
    stmt = sqlite_insert(StudentEmailTracking).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=["student_id", "email_date"],
        set_={"email_count": StudentEmailTracking.email_count + 1},
    )


def check_and_reserve(db: Session, *, student_id: int, today: date | None = None) -> QuotaCheck:
    """
    Read today's count without changing it.
    A missing row means nothing was sent yet today (count 0).
    """
    today = today or date.today()
    row = _get_row(db, student_id=student_id, today=today)
    count = int(row.email_count or 0) if row else 0
    return QuotaCheck(allowed=count < DAILY_EMAIL_LIMIT, current_count=count)


def commit(db: Session, *, student_id: int, today: date | None = None) -> int:
    """
    Count one successful send. Creates today's row on first use.
    Writes but does not commit; the caller commits together with the application row.
    Returns the new count.
    """
    today = today or date.today()
    db.execute(_increment_statement(db, student_id=int(student_id), today=today))
    row = _get_row(db, student_id=student_id, today=today)
    db.refresh(row)
    count = int(row.email_count or 0)
    logger.info("email quota student_id=%s date=%s count=%s/%s", student_id, today, count, DAILY_EMAIL_LIMIT)
    return count


def usage(db: Session, *, student_id: int, today: date | None = None) -> dict:
    check = check_and_reserve(db, student_id=student_id, today=today)
    return {
        "emailsSentToday": check.current_count,
        "emailsRemaining": check.remaining,
        "limit": check.limit,
    }
