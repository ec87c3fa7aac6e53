"""
tutor_backend/orm/adaptive.py
Learning-path state and graded attempts used for adaptive tutoring hints
"""
from sqlalchemy import Column, Integer, String, Float, Boolean, JSON, ForeignKey
from tutor_backend.orm.base import TrackedRecord


class StudentPath(TrackedRecord):
    """
    A learner's path. Only the active path is read.

    `metadata` is reserved on declarative classes, hence path_metadata.
    Adaptive state lives under path_metadata["adaptive_state"].
    """
    __tablename__ = "student_paths"

    student_id = Column(String(64), ForeignKey("student_profiles.id"), nullable=False, index=True)
    status = Column(String(40), default="active", nullable=False)
    path_metadata = Column("metadata", JSON, nullable=True)


class AdaptiveAttemptRecord(TrackedRecord):
    """One graded practice / quiz answer"""
    __tablename__ = "adaptive_attempts"

    student_id = Column(String(64), ForeignKey("student_profiles.id"), nullable=False, index=True)
    standards = Column(JSON, nullable=True, comment="Curriculum standard codes")
    correct = Column(Boolean, default=False, nullable=False)
    accuracy = Column(Float, nullable=True)
    difficulty = Column(Integer, nullable=True)
    source = Column(String(40), nullable=True, comment="practice_answered | quiz_submitted | lesson_completed")
