from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class JobMatch(Base):
    """
    Stored skill-match score for a (student, job) pair.
    Recalculation updates the row in place; `viewed` survives recalculation.
    """
    __tablename__ = "job_matches"
    __table_args__ = (
        UniqueConstraint("student_id", "job_id", name="uq_job_matches_student_job"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("student_profiles.id"), nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    match_score = Column(Float, nullable=False, default=0.0)  # 0-100
    viewed = Column(Boolean, nullable=False, default=False)
    match_details = Column(Text, nullable=True)
    matched_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    student = relationship("StudentProfile", back_populates="matches")
    job = relationship("Job", back_populates="matches")

    def __repr__(self) -> str:
        return f"<JobMatch(student={self.student_id}, job={self.job_id}, score={self.match_score})>"
