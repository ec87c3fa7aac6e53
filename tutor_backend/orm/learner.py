"""
tutor_backend/orm/learner.py
Learner-owned rows: profile, lesson progress, skill mastery, preferences

Learner ids are opaque strings issued by the auth provider.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship
from tutor_backend.orm.base import Base


class StudentProfile(Base):
    """
    Core learner profile.

    learning_style is a free-form JSON object edited by parents and the
    onboarding flow; it carries chat/study mode and tutor controls.
    learning_path is an ordered list of {title, module, subject, status}.
    """
    __tablename__ = "student_profiles"

    id = Column(String(64), primary_key=True, index=True)
    grade = Column(Integer, nullable=True)
    level = Column(Integer, nullable=True)
    strengths = Column(JSON, nullable=True, comment="List of strength labels")
    weaknesses = Column(JSON, nullable=True, comment="List of focus-area labels")
    learning_path = Column(JSON, nullable=True)
    learning_style = Column(JSON, nullable=True)


class StudentProgress(Base):
    __tablename__ = "student_progress"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(String(64), ForeignKey("student_profiles.id"), nullable=False, index=True)
    lesson_id = Column(Integer, ForeignKey("lessons.id"), nullable=True)
    status = Column(String(40), nullable=True)
    mastery_pct = Column(Float, nullable=True)
    last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=True, index=True)

    lesson = relationship("Lesson")


class StudentMastery(Base):
    __tablename__ = "student_mastery"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(String(64), ForeignKey("student_profiles.id"), nullable=False, index=True)
    skill_id = Column(Integer, ForeignKey("skills.id"), nullable=False)
    mastery_pct = Column(Float, nullable=True)


class StudentPreferences(Base):
    """AI consent flag and chosen tutor persona"""
    __tablename__ = "student_preferences"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(String(64), ForeignKey("student_profiles.id"), nullable=False, unique=True)
    tutor_persona_id = Column(String(64), ForeignKey("tutor_personas.id"), nullable=True)
    opt_in_ai = Column(Boolean, default=True, nullable=False)
