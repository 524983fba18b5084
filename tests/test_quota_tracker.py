import threading
import time
from datetime import date

from backend.app import database
from backend.app.models.email_tracking import StudentEmailTracking
from backend.app.services import quota_tracker


def test_first_check_of_the_day_is_allowed_with_zero(db_session, make_student):
    student = make_student()
    check = quota_tracker.check_and_reserve(db_session, student_id=student.id, today=date(2025, 3, 1))
    assert check.allowed is True
    assert check.current_count == 0
    assert check.remaining == 10
    # Reading does not create the day's row.
    assert db_session.query(StudentEmailTracking).count() == 0


def test_commit_creates_then_increments(db_session, make_student):
    student = make_student()
    day = date(2025, 3, 1)
    assert quota_tracker.commit(db_session, student_id=student.id, today=day) == 1
    assert quota_tracker.commit(db_session, student_id=student.id, today=day) == 2
    db_session.commit()

    rows = db_session.query(StudentEmailTracking).all()
    assert len(rows) == 1
    assert rows[0].email_count == 2


def test_tenth_send_blocks_the_eleventh(db_session, make_student):
    student = make_student()
    day = date(2025, 3, 1)
    for _ in range(9):
        quota_tracker.commit(db_session, student_id=student.id, today=day)
    db_session.commit()
    assert quota_tracker.check_and_reserve(db_session, student_id=student.id, today=day).allowed is True

    quota_tracker.commit(db_session, student_id=student.id, today=day)
    db_session.commit()
    check = quota_tracker.check_and_reserve(db_session, student_id=student.id, today=day)
    assert check.allowed is False
    assert check.current_count == 10
    assert check.remaining == 0


def test_counts_are_per_day_and_per_student(db_session, make_student):
    a = make_student()
    b = make_student()
    quota_tracker.commit(db_session, student_id=a.id, today=date(2025, 3, 1))
    quota_tracker.commit(db_session, student_id=a.id, today=date(2025, 3, 2))
    quota_tracker.commit(db_session, student_id=b.id, today=date(2025, 3, 1))
    db_session.commit()

    assert quota_tracker.usage(db_session, student_id=a.id, today=date(2025, 3, 1)) == {
        "emailsSentToday": 1,
        "emailsRemaining": 9,
        "limit": 10,
    }
    assert quota_tracker.check_and_reserve(db_session, student_id=b.id, today=date(2025, 3, 2)).current_count == 0


def test_candidate_lock_serializes_same_student():
    events: list[str] = []

    def worker(name: str):
        with quota_tracker.candidate_lock(4242):
            events.append(f"{name}-in")
            time.sleep(0.05)
            events.append(f"{name}-out")

    threads = [threading.Thread(target=worker, args=(n,)) for n in ("a", "b")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # No interleaving: every "in" is directly followed by its own "out".
    assert events[0][0] == events[1][0]
    assert events[2][0] == events[3][0]
    assert 4242 not in quota_tracker._candidate_locks


def test_candidate_lock_entries_are_dropped_when_idle():
    for student_id in range(1000, 1050):
        with quota_tracker.candidate_lock(student_id):
            assert student_id in quota_tracker._candidate_locks
    assert not any(1000 <= k < 1050 for k in quota_tracker._candidate_locks)


def test_candidate_lock_entry_is_dropped_after_an_error():
    try:
        with quota_tracker.candidate_lock(7777):
            raise ValueError("boom")
    except ValueError:
        pass
    assert 7777 not in quota_tracker._candidate_locks


def test_commit_counts_onto_a_row_created_by_another_session(db_session, make_student):
    student = make_student()
    day = date(2025, 3, 1)
    assert quota_tracker.check_and_reserve(db_session, student_id=student.id, today=day).current_count == 0

    other = database.SessionLocal()
    try:
        other.add(StudentEmailTracking(student_id=student.id, email_date=day, email_count=3))
        other.commit()
    finally:
        other.close()

    assert quota_tracker.commit(db_session, student_id=student.id, today=day) == 4
    db_session.commit()
    rows = db_session.query(StudentEmailTracking).filter(StudentEmailTracking.student_id == student.id).all()
    assert [r.email_count for r in rows] == [4]
