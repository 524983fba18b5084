from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class Application(Base):
    __tablename__ = "job_applications"
    __table_args__ = (
        # Storage backstop for concurrent submissions: one row per (student, job).
        # Stale pending rows are deleted before a new attempt, never updated in place.
        UniqueConstraint("student_id", "job_id", name="uq_job_applications_student_job"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("student_profiles.id"), nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    cv_id = Column(Integer, ForeignKey("cvs.id"), nullable=False)
    cover_letter = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending")  # pending | submitted

    # Notification metadata
    email_sent = Column(Boolean, nullable=False, default=False)
    email_sent_at = Column(DateTime(timezone=True), nullable=True)
    email_subject = Column(String(255), nullable=True)
    email_body = Column(Text, nullable=True)

    # Unset until the notification email has been delivered.
    applied_at = Column(DateTime(timezone=True), nullable=True)
    last_updated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    student = relationship("StudentProfile", back_populates="applications")
    job = relationship("Job", back_populates="applications")
    cv = relationship("CV")
