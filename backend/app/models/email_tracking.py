from sqlalchemy import Column, Date, Integer, UniqueConstraint

from ..database import Base


class StudentEmailTracking(Base):
    """Per-student, per-calendar-day count of application emails sent."""

    __tablename__ = "student_email_tracking"
    __table_args__ = (
        UniqueConstraint("student_id", "email_date", name="uq_student_email_tracking_day"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, nullable=False, index=True)
    email_date = Column(Date, nullable=False)
    email_count = Column(Integer, nullable=False, default=0)
