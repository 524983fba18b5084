from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class EmployerProfile(Base):
    """Employer or placement-office account that owns job postings."""

    __tablename__ = "employer_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    company_name = Column(String(255), nullable=True)
    industry = Column(String(120), nullable=True)
    contact_person_name = Column(String(255), nullable=True)
    contact_person_email = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="employer_profile")
    jobs = relationship("Job", back_populates="employer")
