"""
tutor_backend/services/student_context_service.py
Student Context Engine (cached)

Assembles the per-learner tailoring context for the tutor.

FETCH RULES:
- Independent reads run concurrently (asyncio.gather)
- Profile failure is fatal → ContextUnavailableError
- Any other sub-fetch failure is logged and its field defaults
- Adaptive failure falls back to difficulty 1 with no misconceptions
- Results are cached per learner for a short TTL; writes elsewhere are
  picked up once the entry expires
"""
import asyncio
import logging
from typing import Optional, List, Dict, Any, Tuple

from tutor_backend.ai.anonymizer import anonymize
from tutor_backend.ai.context import (
    StudentContext,
    LessonSnapshot,
    SubjectMastery,
    TutorPersona,
    AdaptiveAttempt,
    CHAT_MODES,
    STUDY_MODES,
)
from tutor_backend.errors import ContextUnavailableError
from tutor_backend.realtime.kv_store import KeyValueStore
from tutor_backend.services.learner_store import LearnerProfileStore, AdaptiveContextProvider

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30
MAX_LISTED_AREAS = 4
LESSON_ONLY_GRADE_CEILING = 13

NEUTRAL_ADAPTIVE = {"target_difficulty": 1, "misconceptions": [], "recent_attempts": []}

ALLOW_TUTOR_KEYS = ("allowTutor", "allow_tutor", "ai_enabled", "aiEnabled")
LESSON_ONLY_KEYS = (
    "tutorLessonOnly",
    "tutor_lesson_only",
    "lessonOnly",
    "lesson_only",
    "limitTutorToLessonContext",
    "ai_lesson_only",
)
DAILY_LIMIT_KEYS = (
    "tutorDailyLimit",
    "tutor_daily_limit",
    "maxTutorChatsPerDay",
    "max_tutor_chats_per_day",
    "dailyTutorLimit",
    "daily_tutor_limit",
)


def _first_present(style: Dict[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if style.get(key) is not None:
            return style[key]
    return None


def _first_bool(style: Dict[str, Any], keys: Tuple[str, ...]) -> Optional[bool]:
    value = _first_present(style, keys)
    return value if isinstance(value, bool) else None


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, str)]


def resolve_chat_mode(style: Dict[str, Any], grade: Optional[int]) -> str:
    raw = _first_present(style, ("chatMode", "chat_mode", "mode"))
    if raw in CHAT_MODES:
        return raw
    if grade is not None:
        if grade <= 3:
            return "guided_only"
        if grade <= 5:
            return "guided_preferred"
    return "free"


def resolve_study_mode(style: Dict[str, Any]) -> Optional[str]:
    raw = _first_present(style, ("studyMode", "study_mode"))
    return raw if raw in STUDY_MODES else None


def resolve_daily_limit(style: Dict[str, Any]) -> Optional[int]:
    raw = _first_present(style, DAILY_LIMIT_KEYS)
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return int(raw)
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError:
            return None
    return None


def build_mastery_by_subject(
    mastery_rows: List[Dict[str, Any]],
    skills: List[Dict[str, Any]],
    subjects: List[Dict[str, Any]]
) -> List[SubjectMastery]:
    """Mean skill mastery per subject, weakest first."""
    if not mastery_rows or not skills or not subjects:
        return []

    skill_subject = {
        row["id"]: row["subject_id"]
        for row in skills
        if row.get("id") is not None and row.get("subject_id") is not None
    }
    subject_names = {
        row["id"]: row["name"]
        for row in subjects
        if row.get("id") is not None and isinstance(row.get("name"), str)
    }

    totals: Dict[int, List[float]] = {}
    for row in mastery_rows:
        subject_id = skill_subject.get(row.get("skill_id"))
        pct = row.get("mastery_pct")
        if not subject_id or not isinstance(pct, (int, float)):
            continue
        totals.setdefault(subject_id, []).append(float(pct))

    result = [
        SubjectMastery(
            subject=subject_names.get(subject_id, f"Subject {subject_id}"),
            mastery=round(sum(values) / len(values), 2)
        )
        for subject_id, values in totals.items()
        if values
    ]
    result.sort(key=lambda entry: entry.mastery)
    return result


def build_active_lesson(progress_rows: List[Dict[str, Any]]) -> Optional[LessonSnapshot]:
    """Most recent progress row that points at a titled lesson."""
    for row in progress_rows:
        if row.get("lesson_title"):
            return LessonSnapshot(
                title=row["lesson_title"],
                module_title=row.get("module_title"),
                subject=row.get("subject"),
                status=row.get("status"),
                mastery_pct=row.get("mastery_pct"),
                last_activity_at=row.get("last_activity_at"),
            )
    return None


def build_next_lesson(learning_path: Any) -> Optional[LessonSnapshot]:
    """First learning-path entry that is not completed."""
    if not isinstance(learning_path, list):
        return None
    for item in learning_path:
        if not isinstance(item, dict) or item.get("status") == "completed":
            continue
        mastery = item.get("mastery")
        return LessonSnapshot(
            title=item.get("title") or "Upcoming lesson",
            module_title=item.get("moduleTitle") or item.get("module"),
            subject=item.get("subject"),
            status=item.get("status"),
            mastery_pct=mastery if isinstance(mastery, (int, float)) else None,
        )
    return None


def build_persona(raw: Optional[Dict[str, Any]]) -> Optional[TutorPersona]:
    if not raw or not raw.get("name"):
        return None
    return TutorPersona(
        id=str(raw.get("id") or raw["name"]),
        name=raw["name"],
        tone=raw.get("tone"),
        constraints=raw.get("constraints"),
        prompt_snippet=raw.get("prompt_snippet"),
        sample_replies=_string_list(raw.get("sample_replies")),
    )


def build_student_context(
    learner_id: str,
    profile: Optional[Dict[str, Any]],
    progress_rows: List[Dict[str, Any]],
    mastery_rows: List[Dict[str, Any]],
    skills: List[Dict[str, Any]],
    subjects: List[Dict[str, Any]],
    preferences: Optional[Dict[str, Any]],
    persona: Optional[Dict[str, Any]],
    adaptive: Dict[str, Any]
) -> StudentContext:
    """Pure assembly of a StudentContext from fetched rows."""
    profile = profile or {}
    grade = profile.get("grade")
    style = profile.get("learning_style")
    style = style if isinstance(style, dict) else {}

    strengths = _string_list(profile.get("strengths"))
    weaknesses = _string_list(profile.get("weaknesses"))
    mastery_by_subject = build_mastery_by_subject(mastery_rows, skills, subjects)
    focus_areas = weaknesses or [entry.subject for entry in mastery_by_subject[:2]]

    allow_tutor = _first_bool(style, ALLOW_TUTOR_KEYS)
    lesson_only = _first_bool(style, LESSON_ONLY_KEYS)
    if lesson_only is None:
        lesson_only = grade is not None and grade < LESSON_ONLY_GRADE_CEILING

    opt_in = (preferences or {}).get("opt_in_ai")

    attempts = [
        AdaptiveAttempt(
            standards=_string_list(entry.get("standards")),
            correct=bool(entry.get("correct")),
            accuracy=entry.get("accuracy"),
            difficulty=entry.get("difficulty"),
            source=entry.get("source"),
            created_at=entry.get("created_at"),
        )
        for entry in adaptive.get("recent_attempts") or []
        if isinstance(entry, dict)
    ]

    return StudentContext(
        learner_ref=anonymize(learner_id) or "learner",
        grade=grade,
        level=profile.get("level"),
        strengths=strengths[:MAX_LISTED_AREAS],
        focus_areas=focus_areas[:MAX_LISTED_AREAS],
        mastery_by_subject=mastery_by_subject,
        active_lesson=build_active_lesson(progress_rows),
        next_lesson=build_next_lesson(profile.get("learning_path")),
        persona=build_persona(persona),
        opt_in_ai=opt_in if isinstance(opt_in, bool) else True,
        chat_mode=resolve_chat_mode(style, grade),
        chat_mode_locked=bool(_first_bool(style, ("chatModeLocked", "chat_mode_locked"))),
        study_mode=resolve_study_mode(style),
        study_mode_locked=bool(_first_bool(style, ("studyModeLocked", "study_mode_locked"))),
        allow_tutor=True if allow_tutor is None else allow_tutor,
        tutor_lesson_only=lesson_only,
        tutor_daily_limit=resolve_daily_limit(style),
        target_difficulty=adaptive.get("target_difficulty", 1),
        misconceptions=_string_list(adaptive.get("misconceptions")),
        recent_attempts=attempts,
    )


class StudentContextService:
    """
    Cache-fronted learner context fetcher.

    Cache key is the raw learner id (never exposed outside this process);
    the stored context itself only carries the anonymized reference.
    """

    def __init__(
        self,
        store: LearnerProfileStore,
        adaptive_provider: AdaptiveContextProvider,
        cache: KeyValueStore,
        ttl_seconds: float = DEFAULT_TTL_SECONDS
    ):
        self.store = store
        self.adaptive_provider = adaptive_provider
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    def _cache_key(self, learner_id: str) -> str:
        return f"student_context:{learner_id}"

    async def get(self, learner_id: str) -> StudentContext:
        """
        Cached learner context.

        Raises:
            ContextUnavailableError: Profile fetch failed
        """
        key = self._cache_key(learner_id)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        context = await self.fetch(learner_id)
        await self.cache.set(key, context, ttl=self.ttl_seconds)
        return context

    async def fetch(self, learner_id: str) -> StudentContext:
        """Uncached fan-out + assembly."""
        learner_ref = anonymize(learner_id)

        (
            profile,
            progress_rows,
            mastery_rows,
            skills,
            subjects,
            preferences,
            adaptive,
        ) = await asyncio.gather(
            self.store.fetch_profile(learner_id),
            self.store.fetch_recent_progress(learner_id),
            self.store.fetch_mastery(learner_id),
            self.store.fetch_skills(),
            self.store.fetch_subjects(),
            self.store.fetch_preferences(learner_id),
            self.adaptive_provider.get_adaptive_context(learner_id),
            return_exceptions=True,
        )

        if isinstance(profile, BaseException):
            logger.error(f"[Context] Profile fetch failed for {learner_ref}: {profile}")
            raise ContextUnavailableError()

        progress_rows = self._or_default(progress_rows, [], "progress", learner_ref)
        mastery_rows = self._or_default(mastery_rows, [], "mastery", learner_ref)
        skills = self._or_default(skills, [], "skills", learner_ref)
        subjects = self._or_default(subjects, [], "subjects", learner_ref)
        preferences = self._or_default(preferences, None, "preferences", learner_ref)
        adaptive = self._or_default(adaptive, dict(NEUTRAL_ADAPTIVE), "adaptive", learner_ref)

        persona = None
        persona_id = (preferences or {}).get("tutor_persona_id")
        if persona_id:
            try:
                persona = await self.store.fetch_persona(persona_id)
            except Exception as e:
                logger.warning(f"[Context] Failed to load persona for {learner_ref}: {e}")

        context = build_student_context(
            learner_id,
            profile,
            progress_rows or [],
            mastery_rows or [],
            skills or [],
            subjects or [],
            preferences,
            persona,
            adaptive or dict(NEUTRAL_ADAPTIVE),
        )
        logger.info(
            f"[Context] Assembled for {learner_ref}: grade={context.grade}, "
            f"{len(context.mastery_by_subject)} subjects, {len(context.misconceptions)} misconceptions"
        )
        return context

    @staticmethod
    def _or_default(result: Any, default: Any, label: str, learner_ref: Optional[str]) -> Any:
        if isinstance(result, BaseException):
            logger.warning(f"[Context] Failed to load {label} for {learner_ref}: {result}")
            return default
        return result
