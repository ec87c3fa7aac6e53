"""
ORM models read by the learner profile store.
Importing this package registers every table on Base.metadata.
"""
from tutor_backend.orm.base import Base, TrackedRecord
from tutor_backend.orm.curriculum import Subject, Skill, Module, Lesson
from tutor_backend.orm.learner import StudentProfile, StudentProgress, StudentMastery, StudentPreferences
from tutor_backend.orm.tutor_persona import TutorPersonaRecord
from tutor_backend.orm.adaptive import StudentPath, AdaptiveAttemptRecord

__all__ = [
    "Base",
    "TrackedRecord",
    "Subject",
    "Skill",
    "Module",
    "Lesson",
    "StudentProfile",
    "StudentProgress",
    "StudentMastery",
    "StudentPreferences",
    "TutorPersonaRecord",
    "StudentPath",
    "AdaptiveAttemptRecord",
]
