from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class StudentProfile(Base):
    __tablename__ = "student_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    first_name = Column(String(120), nullable=False)
    last_name = Column(String(120), nullable=True)
    email = Column(String(255), nullable=True)  # fallback when the user row has none
    phone = Column(String(50), nullable=True)
    university = Column(String(255), nullable=True)
    field_of_study = Column(String(255), nullable=True)
    skills = Column(Text, nullable=True)  # comma-delimited (legacy rows may hold a JSON list)
    # Plain integer (no FK) to avoid a student_profiles <-> cvs dependency cycle.
    active_cv_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="student_profile")
    cvs = relationship("CV", back_populates="student", cascade="all, delete-orphan")
    applications = relationship("Application", back_populates="student", cascade="all, delete-orphan")
    matches = relationship("JobMatch", back_populates="student", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip()

    @property
    def contact_email(self) -> str | None:
        # Account email is the primary source; the profile copy is only a fallback.
        if self.user is not None and self.user.email:
            return self.user.email
        return self.email
