"""
tutor_backend/services/learner_store.py
Learner Profile Store & Adaptive Context Provider

Read-only collaborators consumed by the student context service.
Both are defined as small abstract interfaces so tests (and other
deployments) can swap in fakes; the SQL implementations below read the
tables declared in tutor_backend/orm.

Each SQL sub-fetch opens its own session so the context fan-out can run
the queries concurrently.
"""
import abc
import logging
from typing import Optional, List, Dict, Any

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload

from tutor_backend.orm.curriculum import Subject, Skill, Lesson
from tutor_backend.orm.learner import StudentProfile, StudentProgress, StudentMastery, StudentPreferences
from tutor_backend.orm.tutor_persona import TutorPersonaRecord
from tutor_backend.orm.adaptive import StudentPath, AdaptiveAttemptRecord

logger = logging.getLogger(__name__)

RECENT_PROGRESS_LIMIT = 5
ADAPTIVE_ATTEMPT_LIMIT = 12
RECENT_ATTEMPTS_REPORTED = 8
MAX_MISCONCEPTIONS = 4
MISS_ACCURACY_CEILING = 0.8
DEFAULT_DIFFICULTY = 1
MAX_DIFFICULTY = 5


class LearnerProfileStore(abc.ABC):
    """Read-only queries behind the learner context."""

    @abc.abstractmethod
    async def fetch_profile(self, learner_id: str) -> Optional[Dict[str, Any]]:
        """grade, level, strengths, weaknesses, learning_path, learning_style"""

    @abc.abstractmethod
    async def fetch_recent_progress(self, learner_id: str, limit: int = RECENT_PROGRESS_LIMIT) -> List[Dict[str, Any]]:
        """Newest first: status, mastery_pct, last_activity_at, lesson_title, module_title, subject"""

    @abc.abstractmethod
    async def fetch_mastery(self, learner_id: str) -> List[Dict[str, Any]]:
        """skill_id, mastery_pct"""

    @abc.abstractmethod
    async def fetch_skills(self) -> List[Dict[str, Any]]:
        """id, subject_id, name"""

    @abc.abstractmethod
    async def fetch_subjects(self) -> List[Dict[str, Any]]:
        """id, name"""

    @abc.abstractmethod
    async def fetch_preferences(self, learner_id: str) -> Optional[Dict[str, Any]]:
        """tutor_persona_id, opt_in_ai"""

    @abc.abstractmethod
    async def fetch_persona(self, persona_id: str) -> Optional[Dict[str, Any]]:
        """id, name, tone, constraints, prompt_snippet, sample_replies"""


class AdaptiveContextProvider(abc.ABC):

    @abc.abstractmethod
    async def get_adaptive_context(self, learner_id: str) -> Dict[str, Any]:
        """
        Returns:
            {"target_difficulty": int, "misconceptions": [str], "recent_attempts": [dict]}
        """


def detect_misconceptions(attempts: List[Dict[str, Any]]) -> List[str]:
    """
    Flag standards the learner keeps missing.

    Attempts are newest first. For every standard (untagged attempts count
    as "general"), two or more misses among its three most recent attempts
    mark a misconception. A miss is an incorrect answer with accuracy below
    MISS_ACCURACY_CEILING.
    """
    by_standard: Dict[str, List[Dict[str, Any]]] = {}
    for attempt in attempts:
        for code in attempt.get("standards") or ["general"]:
            by_standard.setdefault(code, []).append(attempt)

    flagged = []
    for code, entries in by_standard.items():
        recent = entries[:3]
        misses = [
            entry for entry in recent
            if not entry.get("correct") and (entry.get("accuracy") or 0) < MISS_ACCURACY_CEILING
        ]
        if len(misses) >= 2:
            flagged.append(code)
    return flagged[:MAX_MISCONCEPTIONS]


def read_target_difficulty(metadata: Optional[Dict[str, Any]]) -> int:
    """Current difficulty from path metadata, clamped to 1..5."""
    metadata = metadata or {}
    adaptive = metadata.get("adaptive_state") or metadata.get("adaptive") or {}
    value = adaptive.get("current_difficulty") if isinstance(adaptive, dict) else None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return max(DEFAULT_DIFFICULTY, min(MAX_DIFFICULTY, round(value)))
    return DEFAULT_DIFFICULTY


class SqlLearnerProfileStore(LearnerProfileStore):

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def fetch_profile(self, learner_id: str) -> Optional[Dict[str, Any]]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(StudentProfile).where(StudentProfile.id == learner_id)
            )
            profile = result.scalar_one_or_none()
        if profile is None:
            return None
        return {
            "grade": profile.grade,
            "level": profile.level,
            "strengths": profile.strengths or [],
            "weaknesses": profile.weaknesses or [],
            "learning_path": profile.learning_path or [],
            "learning_style": profile.learning_style or {},
        }

    async def fetch_recent_progress(self, learner_id: str, limit: int = RECENT_PROGRESS_LIMIT) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(StudentProgress)
                .options(selectinload(StudentProgress.lesson).selectinload(Lesson.module))
                .where(StudentProgress.student_id == learner_id)
                .order_by(desc(StudentProgress.last_activity_at))
                .limit(limit)
            )
            rows = result.scalars().all()

        progress = []
        for row in rows:
            lesson = row.lesson
            module = lesson.module if lesson else None
            progress.append({
                "status": row.status,
                "mastery_pct": row.mastery_pct,
                "last_activity_at": row.last_activity_at.isoformat() if row.last_activity_at else None,
                "lesson_title": lesson.title if lesson else None,
                "module_title": module.title if module else None,
                "subject": module.subject if module else None,
            })
        return progress

    async def fetch_mastery(self, learner_id: str) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(StudentMastery.skill_id, StudentMastery.mastery_pct)
                .where(StudentMastery.student_id == learner_id)
            )
            return [{"skill_id": skill_id, "mastery_pct": pct} for skill_id, pct in result.all()]

    async def fetch_skills(self) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            result = await session.execute(select(Skill.id, Skill.subject_id, Skill.name))
            return [
                {"id": skill_id, "subject_id": subject_id, "name": name}
                for skill_id, subject_id, name in result.all()
            ]

    async def fetch_subjects(self) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            result = await session.execute(select(Subject.id, Subject.name))
            return [{"id": subject_id, "name": name} for subject_id, name in result.all()]

    async def fetch_preferences(self, learner_id: str) -> Optional[Dict[str, Any]]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(StudentPreferences).where(StudentPreferences.student_id == learner_id)
            )
            prefs = result.scalar_one_or_none()
        if prefs is None:
            return None
        return {"tutor_persona_id": prefs.tutor_persona_id, "opt_in_ai": prefs.opt_in_ai}

    async def fetch_persona(self, persona_id: str) -> Optional[Dict[str, Any]]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(TutorPersonaRecord).where(TutorPersonaRecord.id == persona_id)
            )
            persona = result.scalar_one_or_none()
        if persona is None:
            return None
        return {
            "id": persona.id,
            "name": persona.name,
            "tone": persona.tone,
            "constraints": persona.constraints,
            "prompt_snippet": persona.prompt_snippet,
            "sample_replies": persona.sample_replies or [],
        }


class SqlAdaptiveContextProvider(AdaptiveContextProvider):
    """
    Adaptive hints from the learner's active path and graded attempts.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_adaptive_context(self, learner_id: str) -> Dict[str, Any]:
        async with self.session_factory() as session:
            path_result = await session.execute(
                select(StudentPath)
                .where(StudentPath.student_id == learner_id, StudentPath.status == "active")
                .order_by(desc(StudentPath.updated_at))
                .limit(1)
            )
            path = path_result.scalar_one_or_none()

            attempt_result = await session.execute(
                select(AdaptiveAttemptRecord)
                .where(AdaptiveAttemptRecord.student_id == learner_id)
                .order_by(desc(AdaptiveAttemptRecord.created_at), desc(AdaptiveAttemptRecord.id))
                .limit(ADAPTIVE_ATTEMPT_LIMIT)
            )
            rows = attempt_result.scalars().all()

        attempts = [
            {
                "standards": [code for code in (row.standards or []) if isinstance(code, str)],
                "correct": bool(row.correct),
                "accuracy": row.accuracy,
                "difficulty": row.difficulty,
                "source": row.source,
                "created_at": row.created_at.isoformat() if row.created_at else None,
            }
            for row in rows
        ]

        return {
            "target_difficulty": read_target_difficulty(path.path_metadata if path else None),
            "misconceptions": detect_misconceptions(attempts),
            "recent_attempts": attempts[:RECENT_ATTEMPTS_REPORTED],
        }
